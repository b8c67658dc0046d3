import struct

import crcmod.predefined # Para calcular CRC

# Función CRC Modbus (RTU): polinomio 0xA001 (reflejado), valor inicial 0xFFFF
crc16 = crcmod.predefined.mkPredefinedCrcFun('modbus')


def crc_bytes(data):
    """Devuelve el CRC16 de `data` como 2 bytes, byte bajo primero."""
    return struct.pack('<H', crc16(bytes(data)))


def append_crc(data):
    """Añade el CRC16 (Little-Endian) al final del frame."""
    data = bytes(data)
    return data + crc_bytes(data)


def check_crc(frame_with_crc):
    """True si los 2 últimos bytes coinciden con el CRC16 del resto del frame."""
    # Mínimo: SlaveID + 1 byte + CRC(2)
    if len(frame_with_crc) < 3:
        return False
    return crc_bytes(frame_with_crc[:-2]) == bytes(frame_with_crc[-2:])
