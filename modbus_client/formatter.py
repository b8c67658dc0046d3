import struct

from .exceptions import ModbusInvalidResponseException

class DataFormatter:
    @staticmethod
    def to_hex(data_bytes):
        """Representa bytes como cadena hex en minúsculas (ej. b'\\x00\\x2a' -> '002a')."""
        return bytes(data_bytes).hex()

    @staticmethod
    def format_value(value, format_type='dec'):
        """Formatea un valor de registro según el tipo especificado."""
        if format_type == 'hex':
            return f"0x{value:04X}"
        elif format_type == 'bin':
             return f"0b{value:016b}"
        else: # 'dec' por defecto
            return str(value)

    @staticmethod
    def parse_registers(data_bytes, quantity=None):
        """Parsea bytes recibidos en una lista de registros (words/16 bits)."""
        if quantity is None:
            quantity = len(data_bytes) // 2
        if len(data_bytes) != quantity * 2:
            raise ModbusInvalidResponseException(f"Tamaño de datos incorrecto. Esperado {quantity*2} bytes, recibidos {len(data_bytes)}")

        # '>H' significa Big-Endian Unsigned Short (16 bits)
        return [value for (value,) in struct.iter_unpack('>H', data_bytes)]
