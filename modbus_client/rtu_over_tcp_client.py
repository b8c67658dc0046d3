import socket
import time
import threading

from .exceptions import (ConnectionException, ConnectTimeout, ReadError, ReadTimeout,
                         SocketCreateError, WriteError)
from .frames import expected_response_length, is_length_known

DEFAULT_CONNECT_TIMEOUT = 5 # Presupuesto total (s) para lograr conectar
DEFAULT_IO_TIMEOUT = 1 # Timeout (s) de cada envío/recepción
CONNECT_RETRY_INTERVAL = 0.1 # Pausa entre intentos de conexión rechazados
MAX_RESPONSE_SIZE = 1024

class ModbusRtuOverTcpClient:
    """
    Cliente Modbus que envía frames RTU (con CRC) sobre una conexión TCP.
    Una instancia = un socket; no se reutiliza entre transacciones.
    """
    def __init__(self):
        self.ip = None
        self.port = None
        self.sock = None
        self.is_connected = False
        self.connection_start_time = None
        self._log_service = None
        self._client_lock = threading.Lock() # Lock para operaciones del socket
        self.timeout = DEFAULT_IO_TIMEOUT

    def set_log_service(self, log_service):
        self._log_service = log_service

    def _log(self, level, message, layer="RTU_CLIENT"):
        if self._log_service:
            log_msg = f"[{layer}] {message}"
            if level == "DEBUG":
                self._log_service.log_debug(log_msg)
            elif level == "INFO":
                self._log_service.log_info(log_msg)
            elif level == "WARN":
                self._log_service.log_warning(log_msg)
            elif level == "ERROR":
                self._log_service.log_error(log_msg)
            elif level == "CRITICAL":
                self._log_service.log_critical(log_msg)
            else:  # Default a debug si nivel es desconocido
                self._log_service.log_debug(f"[UNKNOWN_LVL:{level}] {log_msg}")

    def connect(self, ip, port, connect_timeout=DEFAULT_CONNECT_TIMEOUT, io_timeout=DEFAULT_IO_TIMEOUT):
        """
        Establece conexión TCP (síncrona). Reintenta hasta agotar `connect_timeout`
        segundos; cada intento está acotado por `io_timeout`. Lanza excepción en fallo.
        """
        with self._client_lock:
            if self.is_connected:
                 raise ConnectionException("Cliente RTU over TCP ya está conectado.")

            self.ip = ip
            self.port = port
            self.timeout = io_timeout

            self._log("INFO", f"Intentando conectar (RTU over TCP) a {self.ip}:{self.port} (Timeout: {connect_timeout}s)...", layer="SOCKET")
            deadline = time.monotonic() + connect_timeout
            attempt = 0
            last_error = None
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                attempt += 1
                try:
                    temp_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                except OSError as e:
                    self._log("ERROR", f"No se pudo crear el socket: {e}", layer="SOCKET")
                    raise SocketCreateError(f"Fallo al crear socket: {e}") from e

                try:
                    temp_sock.settimeout(min(io_timeout, remaining))
                    temp_sock.connect((self.ip, self.port))
                except OSError as e:
                    temp_sock.close()
                    last_error = e
                    self._log("DEBUG", f"Intento {attempt} fallido: {e}", layer="SOCKET")
                    pause = min(CONNECT_RETRY_INTERVAL, deadline - time.monotonic())
                    if pause > 0:
                        time.sleep(pause)
                    continue

                temp_sock.settimeout(io_timeout)
                self.sock = temp_sock
                self.is_connected = True
                self.connection_start_time = time.time()
                self._log("INFO", f"Conexión TCP establecida para RTU over TCP con {self.ip}:{self.port} (intento {attempt})", layer="SOCKET")
                return

            self._reset_connection_state()
            self._log("ERROR", f"Timeout ({connect_timeout}s) al conectar a {self.ip}:{self.port} tras {attempt} intentos: {last_error}", layer="SOCKET")
            raise ConnectTimeout(f"Timeout al conectar a {self.ip}:{self.port}")

    def _reset_connection_state(self):
        """ Método auxiliar para limpiar el estado de conexión """
        self.sock = None
        self.is_connected = False
        self.connection_start_time = None

    def disconnect(self, acquire_lock=True):
        """Cierra la conexión del socket. Idempotente."""
        lock = self._client_lock if acquire_lock else None
        if lock: lock.acquire()
        try:
            if self.sock:
                self._log("INFO", f"Cerrando socket (RTU over TCP) tras {self.get_connection_uptime():.3f}s conectado...", layer="SOCKET")
                try:
                    self.sock.close()
                    self._log("INFO", "Socket cerrado.", layer="SOCKET")
                except OSError as e:
                    self._log("ERROR", f"Error al cerrar socket: {e}", layer="SOCKET")
                finally:
                    self._reset_connection_state()
            else:
                self._reset_connection_state() # Asegurar estado limpio
        finally:
            if lock: lock.release()

    def get_connection_uptime(self):
        if self.is_connected and self.connection_start_time:
            return time.time() - self.connection_start_time
        return 0

    def send(self, frame):
        """Envía el frame completo. Cualquier fallo es WriteError."""
        with self._client_lock:
            if not self.is_connected or not self.sock:
                raise WriteError("No conectado al servidor Modbus.")
            self._log("DEBUG", f"Enviando frame RTU ({len(frame)} bytes): {frame.hex()}", layer="RTU_SENT")
            try:
                self.sock.sendall(frame)
            except OSError as e:
                self._log("ERROR", f"Error de escritura en socket: {e}", layer="SOCKET")
                raise WriteError(f"Error de escritura en socket: {e}") from e

    def receive(self, max_bytes=MAX_RESPONSE_SIZE):
        """
        Lee una respuesta RTU. Acumula lecturas hasta completar la longitud que
        indica la cabecera (función + byte count), todo dentro de un único timeout.
        Si la función es desconocida devuelve lo recibido en la primera lectura.
        """
        with self._client_lock:
            if not self.is_connected or not self.sock:
                raise ReadError("Socket no disponible para recv.")

            data = bytearray()
            deadline = time.monotonic() + self.timeout
            try:
                while len(data) < max_bytes:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise socket.timeout()
                    self.sock.settimeout(remaining)
                    packet = self.sock.recv(max_bytes - len(data))
                    if not packet:
                        self._log("ERROR", f"Conexión cerrada por peer (recibidos {len(data)} bytes).", layer="SOCKET")
                        self.disconnect(acquire_lock=False)
                        raise ReadError("Conexión cerrada inesperadamente por el servidor.")
                    data.extend(packet)

                    if not is_length_known(data):
                        break
                    expected = expected_response_length(data)
                    if expected is not None and len(data) >= expected:
                        if len(data) > expected:
                            self._log("WARN", f"Descartando {len(data) - expected} bytes sobrantes: {bytes(data[expected:]).hex()}", layer="RTU_RECV")
                            del data[expected:]
                        break
            except socket.timeout:
                self._log("ERROR", f"Timeout ({self.timeout}s) esperando respuesta (recibidos {len(data)} bytes: {bytes(data).hex()})", layer="SOCKET")
                raise ReadTimeout(f"Timeout esperando respuesta (recibidos {len(data)} bytes)")
            except OSError as e:
                self._log("ERROR", f"Error de socket durante recv: {e}", layer="SOCKET")
                self.disconnect(acquire_lock=False)
                raise ReadError(f"Error de socket durante recv: {e}") from e
            finally:
                if self.sock:
                    self.sock.settimeout(self.timeout)

            self._log("DEBUG", f"Frame RTU recibido ({len(data)} bytes): {bytes(data).hex()}", layer="RTU_RECV")
            return bytes(data)
