"""
Construcción y decodificación de frames Modbus RTU:
[SlaveID][FuncCode][payload...][CRC bajo][CRC alto]

Solo se soportan Read Holding Registers (0x03) y Write Multiple Registers (0x10).
"""
import struct
from dataclasses import dataclass

from .crc import append_crc, check_crc, crc16
from .exceptions import (AddressMismatch, CrcError, InvalidCommand,
                         ModbusInvalidResponseException, SlaveExceptionResponse,
                         UnknownFunctionCode)

FUNC_READ_HOLDING = 0x03
FUNC_WRITE_MULTIPLE = 0x10
EXCEPTION_FLAG = 0x80

# Longitudes fijas de respuesta (frame completo, CRC incluido)
WRITE_RESPONSE_LEN = 8      # SlaveID + Func + Addr(2) + Qty(2) + CRC(2)
EXCEPTION_RESPONSE_LEN = 5  # SlaveID + Func|0x80 + ExCode + CRC(2)


@dataclass(frozen=True)
class Endpoint:
    """Destino de una transacción: equipo TCP + dirección del esclavo."""
    host: str
    port: int
    unit_id: int

    def __post_init__(self):
        if not self.host:
            raise InvalidCommand("Host vacío")
        if not isinstance(self.port, int) or not (1 <= self.port <= 65535):
            raise InvalidCommand(f"Puerto fuera de rango (1-65535): {self.port!r}")
        if not isinstance(self.unit_id, int) or not (0 <= self.unit_id <= 255):
            raise InvalidCommand(f"Unit ID fuera de rango (0-255): {self.unit_id}")


@dataclass(frozen=True)
class ReadCommand:
    start_address: int
    register_count: int


@dataclass(frozen=True)
class WriteCommand:
    start_address: int
    register_count: int
    data: bytes = b""


@dataclass(frozen=True)
class RawCommand:
    """Mensaje libre en hex: código de función + payload, sin SlaveID ni CRC."""
    message: str


def _check_range(name, value, maximum):
    if not isinstance(value, int) or not (0 <= value <= maximum):
        raise InvalidCommand(f"{name} fuera de rango (0-{maximum}): {value!r}")


def _build_pdu(command):
    if isinstance(command, ReadCommand):
        _check_range("Dirección inicial", command.start_address, 0xFFFF)
        _check_range("Cantidad", command.register_count, 0xFFFF)
        return struct.pack('>BHH', FUNC_READ_HOLDING, command.start_address, command.register_count)
    if isinstance(command, WriteCommand):
        _check_range("Dirección inicial", command.start_address, 0xFFFF)
        # La cantidad viaja también en un único byte
        _check_range("Cantidad", command.register_count, 0xFF)
        if not isinstance(command.data, (bytes, bytearray)):
            raise InvalidCommand(f"Datos de escritura deben ser bytes, no {type(command.data).__name__}")
        header = struct.pack('>BHHB', FUNC_WRITE_MULTIPLE, command.start_address,
                             command.register_count * 2, command.register_count)
        return header + bytes(command.data)
    if isinstance(command, RawCommand):
        try:
            pdu = bytes.fromhex(command.message)
        except (TypeError, ValueError) as e:
            raise InvalidCommand(f"Mensaje hex inválido '{command.message}': {e}") from e
        if not pdu:
            raise InvalidCommand("Mensaje vacío")
        return pdu
    raise InvalidCommand(f"Comando no soportado: {command!r}")


def build_frame(unit_id, command):
    """Construye el frame RTU completo: SlaveID + PDU + CRC16 (Little-Endian)."""
    _check_range("Unit ID", unit_id, 0xFF)
    return append_crc(struct.pack('>B', unit_id) + _build_pdu(command))


def command_from_request(name, address, length, data=""):
    """
    Traduce la petición 'get'/'set' a un comando.
    `data` llega como texto hex (solo para 'set').
    """
    if name not in ('get', 'set'):
        raise InvalidCommand(f"Comando inválido: {name!r}")
    try:
        address = int(address)
        length = int(length)
    except (TypeError, ValueError) as e:
        raise InvalidCommand(f"Dirección/cantidad inválidas: {e}") from e
    if name == 'get':
        return ReadCommand(address, length)
    try:
        raw_data = bytes.fromhex(data or "")
    except (TypeError, ValueError) as e:
        raise InvalidCommand(f"Datos hex inválidos '{data}': {e}") from e
    return WriteCommand(address, length, raw_data)


def expected_response_length(header):
    """
    Longitud total esperada de la respuesta a partir de sus primeros bytes.
    Devuelve None si aún faltan bytes para saberlo o si la función es desconocida
    (usar `is_length_known` para distinguir ambos casos).
    """
    if len(header) < 2:
        return None
    func_code = header[1]
    if func_code & EXCEPTION_FLAG:
        return EXCEPTION_RESPONSE_LEN
    if func_code == FUNC_WRITE_MULTIPLE:
        return WRITE_RESPONSE_LEN
    if func_code == FUNC_READ_HOLDING:
        if len(header) < 3:
            return None
        # SlaveID + Func + ByteCount + Data(N) + CRC(2)
        return 3 + header[2] + 2
    return None


def is_length_known(header):
    """False si la función no permite calcular la longitud (nunca la sabremos)."""
    if len(header) < 2:
        return True
    func_code = header[1]
    return bool(func_code & EXCEPTION_FLAG) or func_code in (FUNC_READ_HOLDING, FUNC_WRITE_MULTIPLE)


def decode_response(response, expected_unit_id, verify_crc=True):
    """
    Valida una respuesta RTU y devuelve su payload:
      0x03 -> datos de registros (sin SlaveID, Func, ByteCount ni CRC)
      0x10 -> dirección + cantidad reenviadas por el esclavo
    """
    response = bytes(response)
    if not response:
        raise ModbusInvalidResponseException("Respuesta vacía.")

    # El SlaveID se valida siempre primero, sin importar función o CRC
    if response[0] != expected_unit_id:
        raise AddressMismatch(expected_unit_id, response[0])

    if len(response) < 4:
        raise ModbusInvalidResponseException(f"Respuesta incompleta ({len(response)} bytes): {response.hex()}")

    if verify_crc and not check_crc(response):
        raise CrcError(crc16(response[:-2]), struct.unpack('<H', response[-2:])[0])

    func_code = response[1]
    if func_code == FUNC_READ_HOLDING:
        byte_count = response[2]
        data_bytes = response[3:-2]
        if byte_count != len(data_bytes):
            raise ModbusInvalidResponseException(f"Byte count ({byte_count}) no coincide con longitud de datos ({len(data_bytes)}).")
        return data_bytes
    if func_code == FUNC_WRITE_MULTIPLE:
        return response[2:-2]
    if func_code & EXCEPTION_FLAG:
        error_code = response[2]
        raise SlaveExceptionResponse(
            f"Error Modbus RTU recibido (Función 0x{func_code & 0x7F:02X}). Código: {error_code}",
            response=response, error_code=error_code)
    raise UnknownFunctionCode(f"Respuesta inválida: {response.hex()}", response=response)
