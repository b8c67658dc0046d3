class ModbusException(Exception):
    """Clase base para excepciones Modbus."""
    pass

# --- Errores de socket / transporte ---

class ConnectionException(ModbusException):
    """Error al conectar/comunicar a nivel de socket."""
    pass

class SocketCreateError(ConnectionException):
    """No se pudo crear el socket."""
    pass

class ConnectTimeout(ConnectionException):
    """No se logró conectar dentro del tiempo límite."""
    pass

class WriteError(ConnectionException):
    """El frame no pudo enviarse completo."""
    pass

class ReadError(ConnectionException):
    """Fallo de lectura (socket cerrado por el peer, error de socket)."""
    pass

class ReadTimeout(ReadError):
    """No llegó la respuesta (completa) dentro del timeout."""
    pass

# --- Errores de respuesta ---

class ModbusIOException(ModbusException):
    """Error en la respuesta Modbus (ej. función no soportada, dirección inválida)."""
    def __init__(self, message, error_code=None):
        super().__init__(message)
        self.error_code = error_code

class UnknownFunctionCode(ModbusIOException):
    """Código de función no soportado en la respuesta. Guarda el frame crudo."""
    def __init__(self, message, response=b"", error_code=None):
        super().__init__(message, error_code=error_code)
        self.response = bytes(response)

class SlaveExceptionResponse(UnknownFunctionCode):
    """El esclavo respondió con una excepción Modbus (función | 0x80)."""
    pass

class ModbusInvalidResponseException(ModbusException):
    """La respuesta recibida no cumple el formato esperado."""
    pass

class AddressMismatch(ModbusInvalidResponseException):
    def __init__(self, expected, received):
        super().__init__(f"Dirección de esclavo incorrecta. Esperada: {expected}, Recibida: {received}")
        self.expected = expected
        self.received = received

class CrcError(ModbusInvalidResponseException):
    def __init__(self, expected, received):
        super().__init__(f"Fallo de verificación CRC. Calculado: 0x{expected:04X}, Recibido: 0x{received:04X}")
        self.expected = expected
        self.received = received

# --- Errores de transacción / parámetros ---

class RetriesExhausted(ModbusException):
    """Se agotaron los reintentos sin obtener una respuesta válida."""
    def __init__(self, attempts, last_error=None):
        message = f"Sin respuesta válida tras {attempts} intentos"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error

class InvalidCommand(ModbusException, ValueError):
    """Comando o parámetros que el codec no puede codificar."""
    pass
