"""Pruebas del codec de frames RTU."""

import pytest

from modbus_client.crc import append_crc, crc16
from modbus_client.exceptions import (AddressMismatch, CrcError, InvalidCommand,
                                      ModbusInvalidResponseException, SlaveExceptionResponse,
                                      UnknownFunctionCode)
from modbus_client.frames import (Endpoint, RawCommand, ReadCommand, WriteCommand,
                                  build_frame, command_from_request, decode_response,
                                  expected_response_length, is_length_known)


class TestBuildReadFrame:
    """Read Holding Registers (0x03)."""

    def test_read_frame_layout(self):
        frame = build_frame(1, ReadCommand(0, 1))
        assert frame == bytes.fromhex("010300000001840a")

    def test_read_frame_big_endian_fields(self):
        frame = build_frame(0x11, ReadCommand(0x0102, 0x0304))
        assert frame[:6] == bytes.fromhex("110301020304")
        assert len(frame) == 8

    def test_read_frame_max_values(self):
        frame = build_frame(255, ReadCommand(0xFFFF, 0xFFFF))
        assert frame[:6] == bytes.fromhex("ff03ffffffff")

    @pytest.mark.parametrize("command", [
        ReadCommand(-1, 1),
        ReadCommand(0x10000, 1),
        ReadCommand(0, 0x10000),
    ])
    def test_read_frame_out_of_range(self, command):
        with pytest.raises(InvalidCommand):
            build_frame(1, command)

    def test_unit_id_out_of_range(self):
        with pytest.raises(InvalidCommand):
            build_frame(256, ReadCommand(0, 1))


class TestBuildWriteFrame:
    """Write Multiple Registers (0x10)."""

    def test_write_frame_layout(self):
        frame = build_frame(1, WriteCommand(1, 2, b"\x00\x0a\x01\x02"))
        body = bytes.fromhex("0110" "0001" "0004" "02" "000a0102")
        assert frame == append_crc(body)

    def test_write_frame_without_data(self):
        frame = build_frame(3, WriteCommand(0x0010, 1))
        assert frame[:-2] == bytes.fromhex("031000100002" "01")

    def test_write_count_must_fit_single_byte(self):
        with pytest.raises(InvalidCommand):
            build_frame(1, WriteCommand(0, 256, b""))

    def test_write_data_must_be_bytes(self):
        with pytest.raises(InvalidCommand, match="bytes"):
            build_frame(1, WriteCommand(0, 1, "002a"))


class TestBuildRawFrame:
    """Mensaje hex libre."""

    def test_raw_message_matches_structured_read(self):
        assert build_frame(1, RawCommand("0300000001")) == build_frame(1, ReadCommand(0, 1))

    def test_raw_message_uppercase_hex(self):
        assert build_frame(1, RawCommand("0300000001")) == build_frame(1, RawCommand("0300000001".upper()))

    @pytest.mark.parametrize("message", ["", "030", "zz00"])
    def test_raw_message_invalid(self, message):
        with pytest.raises(InvalidCommand):
            build_frame(1, RawCommand(message))

    def test_unsupported_command_type(self):
        with pytest.raises(InvalidCommand, match="no soportado"):
            build_frame(1, ("get", 0, 1))


class TestCommandFromRequest:
    """Traducción de 'get'/'set'."""

    def test_get(self):
        assert command_from_request("get", 16, 2) == ReadCommand(16, 2)

    def test_set_with_hex_data(self):
        command = command_from_request("set", "1", "2", "000a0102")
        assert command == WriteCommand(1, 2, b"\x00\x0a\x01\x02")

    def test_invalid_command_name(self):
        with pytest.raises(InvalidCommand, match="Comando inválido"):
            command_from_request("delete", 0, 1)

    def test_invalid_data_hex(self):
        with pytest.raises(InvalidCommand):
            command_from_request("set", 0, 1, "xyz")

    def test_invalid_address(self):
        with pytest.raises(InvalidCommand):
            command_from_request("get", "abc", 1)

    def test_invalid_command_is_value_error(self):
        with pytest.raises(ValueError):
            command_from_request("put", 0, 1)


class TestEndpoint:
    def test_valid(self):
        endpoint = Endpoint("10.0.0.5", 502, 17)
        assert (endpoint.host, endpoint.port, endpoint.unit_id) == ("10.0.0.5", 502, 17)

    def test_immutable(self):
        endpoint = Endpoint("10.0.0.5", 502, 17)
        with pytest.raises(AttributeError):
            endpoint.unit_id = 3

    @pytest.mark.parametrize("host,port,unit_id", [
        ("", 502, 1),
        ("h", 0, 1),
        ("h", 70000, 1),
        ("h", 502, -1),
        ("h", 502, 256),
    ])
    def test_invalid(self, host, port, unit_id):
        with pytest.raises(InvalidCommand):
            Endpoint(host, port, unit_id)

    @pytest.mark.parametrize("port,unit_id", [
        ("502", 1),
        (502.0, 1),
        (None, 1),
        (502, "1"),
        (502, None),
    ])
    def test_non_integer_fields(self, port, unit_id):
        """Tipos no enteros se rechazan como InvalidCommand, no TypeError."""
        with pytest.raises(InvalidCommand):
            Endpoint("h", port, unit_id)


class TestDecodeResponse:
    """Validación y decodificación de respuestas."""

    def test_read_reply_payload(self):
        response = append_crc(bytes.fromhex("010302002a"))
        assert decode_response(response, 1) == b"\x00\x2a"

    def test_read_reply_multiple_registers(self):
        response = append_crc(bytes.fromhex("0703040001ffff"))
        assert decode_response(response, 7) == bytes.fromhex("0001ffff")

    def test_write_reply_payload(self):
        response = append_crc(bytes.fromhex("011000010004"))
        assert decode_response(response, 1) == bytes.fromhex("00010004")

    @pytest.mark.parametrize("body", [
        "020302002a",
        "021000010004",
        "020402002a",
    ])
    def test_address_mismatch_regardless_of_function(self, body):
        with pytest.raises(AddressMismatch) as exc_info:
            decode_response(append_crc(bytes.fromhex(body)), 1)
        assert exc_info.value.expected == 1
        assert exc_info.value.received == 2

    def test_address_mismatch_with_bad_crc(self):
        with pytest.raises(AddressMismatch):
            decode_response(bytes.fromhex("020302002a0000"), 1)

    def test_crc_error(self):
        with pytest.raises(CrcError) as exc_info:
            decode_response(bytes.fromhex("010302002a0000"), 1)
        assert exc_info.value.expected == crc16(bytes.fromhex("010302002a"))
        assert exc_info.value.received == 0x0000

    def test_crc_error_reports_little_endian_trailer(self):
        good = append_crc(bytes.fromhex("010302002a"))
        corrupted = good[:-2] + bytes([good[-2] ^ 0xFF, good[-1]])
        with pytest.raises(CrcError) as exc_info:
            decode_response(corrupted, 1)
        assert exc_info.value.received == corrupted[-2] | (corrupted[-1] << 8)

    def test_crc_check_can_be_disabled(self):
        assert decode_response(bytes.fromhex("010302002a0000"), 1, verify_crc=False) == b"\x00\x2a"

    @pytest.mark.parametrize("func_code", [0x01, 0x04, 0x06, 0x0F, 0x7F])
    def test_unknown_function_code(self, func_code):
        response = append_crc(bytes([0x01, func_code, 0x02, 0x00, 0x2A]))
        with pytest.raises(UnknownFunctionCode) as exc_info:
            decode_response(response, 1)
        assert exc_info.value.response == response

    def test_slave_exception_reply(self):
        response = append_crc(bytes.fromhex("018302"))
        with pytest.raises(SlaveExceptionResponse) as exc_info:
            decode_response(response, 1)
        assert exc_info.value.error_code == 2
        assert isinstance(exc_info.value, UnknownFunctionCode)

    def test_byte_count_mismatch(self):
        response = append_crc(bytes.fromhex("010304002a"))
        with pytest.raises(ModbusInvalidResponseException, match="Byte count"):
            decode_response(response, 1)

    def test_empty_response(self):
        with pytest.raises(ModbusInvalidResponseException):
            decode_response(b"", 1)

    def test_truncated_response(self):
        with pytest.raises(ModbusInvalidResponseException, match="incompleta"):
            decode_response(b"\x01\x03\x02", 1)


class TestExpectedResponseLength:
    """Longitud esperada a partir de la cabecera."""

    def test_read_needs_byte_count(self):
        assert expected_response_length(b"\x01\x03") is None
        assert expected_response_length(b"\x01\x03\x04") == 9

    def test_write(self):
        assert expected_response_length(b"\x01\x10") == 8

    def test_exception(self):
        assert expected_response_length(b"\x01\x90") == 5

    def test_unknown_function(self):
        assert expected_response_length(b"\x01\x04\x02") is None
        assert not is_length_known(b"\x01\x04")

    def test_short_header(self):
        assert expected_response_length(b"\x01") is None
        assert is_length_known(b"\x01")
