# app.py
from flask import Flask, Response, request, jsonify
import os

# --- Importar Servicios y Utilidades ---
from services.log_service import LogService
from services.transaction_service import TransactionService
from modbus_client.exceptions import InvalidCommand, ModbusException
from modbus_client.formatter import DataFormatter
from modbus_client.frames import Endpoint, RawCommand, ReadCommand, command_from_request

# --- Configuración de la Aplicación Flask ---
app = Flask(__name__)

# --- Inicialización Singleton de Servicios ---
log_service = LogService()
transaction_service = TransactionService(log_service=log_service)


def _endpoint_from(data):
    """Crea el Endpoint (inmutable) a partir del JSON de la petición."""
    ip = data.get('ip'); port = data.get('port'); unit_id = data.get('unit_id')
    if not ip or port is None or unit_id is None: raise ValueError("Faltan parámetros (ip, port, unit_id).")
    try:
        return Endpoint(str(ip), int(port), int(unit_id))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Parámetros de conexión inválidos: {e}") from e


def _run_transaction(endpoint, command, format_type='dec'):
    """Ejecuta la transacción y arma la respuesta JSON (éxito o fallo por valor)."""
    try:
        payload = transaction_service.execute(endpoint, command)
    except InvalidCommand:
        raise
    except ModbusException as e:
        log_service.log_error(f"Transacción fallida: {type(e).__name__}: {e}")
        return {"success": False, "message": str(e), "error_type": type(e).__name__}
    result = {"success": True, "data": DataFormatter.to_hex(payload)}
    if isinstance(command, ReadCommand) and len(payload) % 2 == 0:
        registers = DataFormatter.parse_registers(payload)
        result["registers"] = [DataFormatter.format_value(v, format_type) for v in registers]
        result["raw_registers"] = registers
        result["format"] = format_type
    return result


@app.route('/api/transaction', methods=['POST'])
def transaction():
    """Lectura ('get') o escritura ('set') de registros."""
    log_service.log_info("POST /api/transaction")
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data: return jsonify({"success": False, "message": "Falta JSON (objeto)."}), 400
        endpoint = _endpoint_from(data)
        if data.get('address') is None or data.get('length') is None: raise ValueError("Faltan params (address, length).")
        command = command_from_request(data.get('command'), data.get('address'), data.get('length'), data.get('data', ''))
        return jsonify(_run_transaction(endpoint, command, data.get('format', 'dec'))), 200
    except ValueError as ve: # InvalidCommand también es ValueError
        log_service.log_warning(f"Validation Error: {ve}"); return jsonify({"success": False, "message": str(ve)}), 400
    except Exception as e:
        log_service.log_critical(f"Unexpected Error /api/transaction: {e}", exc_info=True)
        return jsonify({"success": False, "message": "Error Interno Servidor."}), 500


@app.route('/api/message', methods=['POST'])
def raw_message():
    """Envío de un mensaje hex libre (función + payload)."""
    log_service.log_info("POST /api/message")
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data: return jsonify({"success": False, "message": "Falta JSON (objeto)."}), 400
        endpoint = _endpoint_from(data)
        message = data.get('message')
        if not message: raise InvalidCommand("Falta 'message'.")
        return jsonify(_run_transaction(endpoint, RawCommand(str(message)))), 200
    except ValueError as ve:
        log_service.log_warning(f"Validation Error: {ve}"); return jsonify({"success": False, "message": str(ve)}), 400
    except Exception as e:
        log_service.log_critical(f"Unexpected Error /api/message: {e}", exc_info=True)
        return jsonify({"success": False, "message": "Error Interno Servidor."}), 500


@app.route('/api/debuglog', methods=['GET'])
def get_debug_log():
    level = request.args.get('level')
    try:
        if request.args.get('format') == 'text':
            return Response(log_service.get_logs_as_text(level), mimetype='text/plain')
        logs = log_service.get_logs(level); return jsonify({"logs": logs})
    except ValueError as ve: return jsonify({"logs": [], "message": str(ve)}), 400


@app.route('/api/debuglog/clear', methods=['POST'])
def clear_debug_log():
    log_service.clear_logs()
    return jsonify({"success": True, "message": "Logs limpiados."})


# --- Punto de Entrada ---
if __name__ == '__main__':
    log_service.log_info(f"***** Iniciando Servidor (PID: {os.getpid()}) *****")
    app.run(host='0.0.0.0', port=5000, debug=True, use_reloader=False, threaded=True)
