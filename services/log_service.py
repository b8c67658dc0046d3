# services/log_service.py
import time
import traceback # Para formatear tracebacks
from collections import deque
import threading

LEVELS = ("DEBUG", "INFO", "WARN", "ERROR", "CRITICAL")

class LogService:
    def __init__(self, max_log_size=250, echo=True):
        self._debug_log = deque(maxlen=max_log_size)
        self._log_lock = threading.Lock()
        self.echo = echo # Imprimir también a consola

    def _add_entry(self, level, message, exc_info=False):
        """Añade una entrada al log, opcionalmente con traceback."""
        full_message = message
        if exc_info:
            # format_exc() devuelve el traceback de la excepción actual
            full_message += f"\nTraceback:\n{traceback.format_exc()}"

        with self._log_lock:
            timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
            thread_name = threading.current_thread().name
            # Formato [LEVEL][ThreadName] Mensaje
            log_entry = f"{timestamp} [{level}][{thread_name}] {full_message}"
            if self.echo:
                print(log_entry)
            self._debug_log.append((level, log_entry))

    def log_debug(self, message, exc_info=False):
        self._add_entry("DEBUG", message, exc_info)

    def log_info(self, message, exc_info=False):
        self._add_entry("INFO", message, exc_info)

    def log_warning(self, message, exc_info=False):
        self._add_entry("WARN", message, exc_info)

    def log_error(self, message, exc_info=False):
        self._add_entry("ERROR", message, exc_info)

    def log_critical(self, message, exc_info=False):
         self._add_entry("CRITICAL", message, exc_info)

    def get_logs(self, level=None):
        """Devuelve las últimas entradas del log (desde `level` hacia arriba si se indica)."""
        if level is not None and level not in LEVELS:
            raise ValueError(f"Nivel de log desconocido: {level}")
        min_index = LEVELS.index(level) if level else 0
        with self._log_lock:
            return [entry for entry_level, entry in self._debug_log
                    if LEVELS.index(entry_level) >= min_index]

    def clear_logs(self):
        """Limpia la cola de logs."""
        with self._log_lock:
            self._debug_log.clear()
        self.log_info("Logs limpiados.") # Loguear la acción

    def get_logs_as_text(self, level=None):
        """Devuelve los logs (filtrados por `level`) como una sola cadena."""
        return "\n".join(self.get_logs(level))
