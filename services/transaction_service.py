# services/transaction_service.py
import threading
import time

from modbus_client.exceptions import (ConnectionException, InvalidCommand, ModbusException,
                                      ModbusInvalidResponseException, RetriesExhausted)
from modbus_client.formatter import DataFormatter
from modbus_client.frames import RawCommand, build_frame, command_from_request, decode_response
from modbus_client.rtu_over_tcp_client import (DEFAULT_CONNECT_TIMEOUT, DEFAULT_IO_TIMEOUT,
                                               MAX_RESPONSE_SIZE, ModbusRtuOverTcpClient)

MAX_RETRIES = 5
RETRY_DELAY = 2.0 # Pausa (s) entre reintentos

class TransactionService:
    """
    Ejecuta una transacción Modbus RTU completa contra un esclavo:
    conectar, enviar, recibir, validar y decodificar, con reintentos acotados.
    Cada llamada usa su propio cliente/socket, que se cierra siempre al terminar.
    """
    def __init__(self, log_service=None, max_retries=MAX_RETRIES, retry_delay=RETRY_DELAY,
                 connect_timeout=DEFAULT_CONNECT_TIMEOUT, io_timeout=DEFAULT_IO_TIMEOUT,
                 client_factory=ModbusRtuOverTcpClient, verify_crc=True):
        if max_retries < 1:
            raise ValueError("max_retries debe ser >= 1")
        self.log_service = log_service
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.client_factory = client_factory
        self.verify_crc = verify_crc
        self._error = ""
        self._error_lock = threading.Lock()

    def _log(self, level, message):
        if not self.log_service:
            return
        log_msg = f"[TRANSACTION] {message}"
        if level == "DEBUG": self.log_service.log_debug(log_msg)
        elif level == "INFO": self.log_service.log_info(log_msg)
        elif level == "WARN": self.log_service.log_warning(log_msg)
        else: self.log_service.log_error(log_msg)

    def execute(self, endpoint, command):
        """
        Devuelve el payload decodificado (bytes). Lanza una subclase de
        ModbusException si la transacción no se completa.
        """
        request_frame = build_frame(endpoint.unit_id, command)
        client = self.client_factory()
        if self.log_service:
            client.set_log_service(self.log_service)

        self._log("INFO", f"Transacción con {endpoint.host}:{endpoint.port} (Unit: {endpoint.unit_id}): {request_frame.hex()}")
        try:
            client.connect(endpoint.host, endpoint.port,
                           connect_timeout=self.connect_timeout, io_timeout=self.io_timeout)

            last_error = None
            attempt = 0
            while attempt < self.max_retries:
                attempt += 1
                try:
                    client.send(request_frame)
                    response = client.receive(MAX_RESPONSE_SIZE)
                    payload = decode_response(response, endpoint.unit_id, verify_crc=self.verify_crc)
                    self._log("INFO", f"Respuesta válida (intento {attempt}/{self.max_retries}): {DataFormatter.to_hex(payload)}")
                    return payload
                except (ConnectionException, ModbusInvalidResponseException) as e:
                    last_error = e
                    self._log("WARN", f"Intento {attempt}/{self.max_retries} fallido: {type(e).__name__}: {e}")
                    # Socket cerrado por el transporte: los intentos restantes no pueden funcionar
                    if not client.is_connected:
                        self._log("WARN", "Conexión perdida, se cancelan los reintentos.")
                        break
                    if attempt < self.max_retries and self.retry_delay > 0:
                        time.sleep(self.retry_delay)

            self._log("ERROR", f"Reintentos agotados ({attempt}/{self.max_retries}). Último error: {last_error}")
            raise RetriesExhausted(attempt, last_error) from last_error
        finally:
            client.disconnect()

    # --- Fachada con resultado por valor (hex o False + get_error()) ---

    def _set_error(self, message):
        with self._error_lock:
            self._error = message

    def get_error(self):
        """Mensaje del último fallo ('' si la última transacción fue exitosa)."""
        with self._error_lock:
            return self._error

    def run(self, endpoint, command):
        """Como execute(), pero devuelve el payload en hex o False si falla."""
        try:
            payload = self.execute(endpoint, command)
        except ModbusException as e:
            self._set_error(str(e))
            self._log("ERROR", f"Transacción fallida: {type(e).__name__}: {e}")
            return False
        self._set_error("")
        return DataFormatter.to_hex(payload)

    def send_command(self, endpoint, name, address, length, data=""):
        """Entrada estructurada: 'get' (lectura 0x03) o 'set' (escritura 0x10)."""
        try:
            command = command_from_request(name, address, length, data)
        except InvalidCommand as e:
            self._set_error(str(e))
            self._log("WARN", f"Comando rechazado: {e}")
            return False
        return self.run(endpoint, command)

    def send_message(self, endpoint, message):
        """Entrada libre: mensaje hex (función + payload) sin SlaveID ni CRC."""
        return self.run(endpoint, RawCommand(message))
