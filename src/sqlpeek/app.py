# Copyright 2025 Reisset
# Licensed under the Apache License, Version 2.0
# See LICENSE file for details

# Standard Library
import os
import sys
import logging
import sqlite3
import argparse
from datetime import datetime

# Flask
from flask import Flask, request, jsonify, session
from flask_session import Session

# Internal modules
from sqlpeek import __version__ as VERSION
from sqlpeek.access_control import AccessControl
from sqlpeek.config import configure, get_configuration
from sqlpeek.database import (
    AccessDenied, QueryTimeout, default_query, execute_query, foreign_keys,
    list_tables, table_columns,
)
from sqlpeek.extraction import extract_table_names
from sqlpeek.validation import QueryRejected, is_safe_query, validate_sql

# --- Paths ---

def get_data_dir():
    """Get user data directory for logs and sessions"""
    data_dir = os.environ.get('SQLPEEK_DATA_DIR')
    if not data_dir:
        if sys.platform == 'win32':
            base = os.environ.get('APPDATA', os.path.expanduser('~'))
        else:
            base = os.path.expanduser('~')
        data_dir = os.path.join(base, '.sqlpeek')

    os.makedirs(data_dir, exist_ok=True)
    return data_dir

DATA_DIR = get_data_dir()

app = Flask(__name__)

# --- Configuration ---
# Use environment variable for secret key, or default for dev
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
app.config['SESSION_TYPE'] = 'filesystem'
app.config['SESSION_FILE_DIR'] = os.path.join(DATA_DIR, 'sessions')
app.config['SESSION_PERMANENT'] = False
app.config['SESSION_USE_SIGNER'] = True

# --- Logging Setup ---
LOG_DIR = os.path.join(DATA_DIR, 'logs')
os.makedirs(LOG_DIR, exist_ok=True)
os.makedirs(app.config['SESSION_FILE_DIR'], exist_ok=True)

# One log file per day
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.path.join(LOG_DIR, f'sqlpeek_{datetime.now().strftime("%Y%m%d")}.log')),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# Initialize Server-side Session
Session(app)

# --- Constants ---
MAX_HISTORY_ENTRIES = 50


def _database_path():
    return get_configuration().database_path


def _no_database():
    logger.warning("Request made with no database configured")
    return jsonify({'error': 'No database configured'}), 400


def _request_sql():
    """Return (sql, error_response) from a JSON body with a 'sql' key."""
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        logger.warning("Request with invalid JSON body")
        return None, (jsonify({'error': 'Invalid request body'}), 400)
    return data.get('sql'), None


def record_history(sql, executed_sql, row_count, warning=None):
    """Append a console query to the session history, keeping the newest entries."""
    history = session.get('query_history', [])
    history.append({
        'sql': sql,
        'executed_sql': executed_sql,
        'row_count': row_count,
        'warning': warning,
        'timestamp': datetime.now().isoformat(timespec='seconds'),
    })
    session['query_history'] = history[-MAX_HISTORY_ENTRIES:]
    session.modified = True


def _run(db_filepath, sql):
    """Execute through the guarded executor and map failures to JSON responses."""
    try:
        return execute_query(db_filepath, sql), None
    except QueryRejected as e:
        logger.warning(f"SQL Blocked by Validation: {e} | Query: {sql}")
        return None, (jsonify({
            'error': str(e),
            'reason': e.reason.value,
            'detail': e.detail,
        }), 403)
    except AccessDenied as e:
        return None, (jsonify({'error': str(e), 'tables': e.tables}), 403)
    except QueryTimeout as e:
        return None, (jsonify({'error': str(e)}), 504)
    except sqlite3.Error as e:
        logger.warning(f"SQL Execution Error: {e} | Query: {sql}")
        return None, (jsonify({'error': f"SQL Error: {e}"}), 400)


@app.route('/api/version')
def get_version():
    """Return the application version."""
    return jsonify({'version': VERSION})

@app.route('/api/tables', methods=['GET'])
def get_tables():
    db_filepath = _database_path()
    if not db_filepath:
        return _no_database()

    access = AccessControl()
    tables = access.filter_accessible_tables(list_tables(db_filepath))
    return jsonify({'tables': tables})

@app.route('/api/tables/<table_name>', methods=['GET'])
def get_table(table_name):
    db_filepath = _database_path()
    if not db_filepath:
        return _no_database()

    access = AccessControl()
    if not access.table_accessible(table_name):
        logger.warning(f"Blocked table lookup: {table_name}")
        return jsonify({'error': access.access_violation_message(table_name)}), 403

    if table_name not in list_tables(db_filepath):
        return jsonify({'error': f"Table '{table_name}' not found"}), 404

    columns = table_columns(db_filepath, table_name)
    visible = access.filter_accessible_columns(table_name, [c['name'] for c in columns])
    columns = [c for c in columns if c['name'] in visible]
    return jsonify({
        'table': table_name,
        'columns': columns,
        'foreign_keys': [
            fk for fk in foreign_keys(db_filepath, table_name)
            if access.table_accessible(fk['to_table'])
        ],
    })

@app.route('/api/tables/<table_name>/query', methods=['POST'])
def console_query(table_name):
    """
    Interactive console for one table.

    An empty or unsafe query is replaced by a plain SELECT of the table and
    the response carries a warning explaining why.
    """
    db_filepath = _database_path()
    if not db_filepath:
        return _no_database()

    access = AccessControl()
    if not access.table_accessible(table_name):
        return jsonify({'error': access.access_violation_message(table_name)}), 403

    data = request.get_json(silent=True) or {}
    sql = data.get('sql') or ''
    config = get_configuration()

    warning = None
    if not sql.strip():
        sql = default_query(table_name, config.default_query_limit)
    elif not is_safe_query(sql):
        logger.warning(f"Unsafe console query replaced: {sql}")
        warning = "Only SELECT queries are allowed. Your query contained potentially unsafe operations. Using default query instead."
        sql = default_query(table_name, config.default_query_limit)

    result, error = _run(db_filepath, sql)
    if error:
        return error

    record_history(data.get('sql') or sql, result.sql, len(result.rows), warning)
    payload = result.to_dict()
    payload['warning'] = warning
    return jsonify(payload)

@app.route('/api/query', methods=['POST'])
def run_query():
    sql, error = _request_sql()
    if error:
        return error

    db_filepath = _database_path()
    if not sql or not db_filepath:
        logger.warning("Execute SQL attempt missing query or database")
        return jsonify({'error': 'Missing SQL or Database'}), 400

    logger.info(f"SQL Execution Attempt: {sql}")
    result, error = _run(db_filepath, sql)
    if error:
        return error
    return jsonify(result.to_dict())

@app.route('/api/query/validate', methods=['POST'])
def check_query():
    sql, error = _request_sql()
    if error:
        return error
    result = validate_sql(sql, max_length=get_configuration().max_query_length)
    return jsonify(result.to_dict())

@app.route('/api/query/tables', methods=['POST'])
def query_tables():
    sql, error = _request_sql()
    if error:
        return error
    tables = sorted(extract_table_names(sql))
    return jsonify({
        'tables': tables,
        'inaccessible': AccessControl().inaccessible_tables(sql) if tables else [],
    })

@app.route('/api/query/history', methods=['GET'])
def query_history():
    return jsonify({'history': session.get('query_history', [])})

@app.errorhandler(404)
def not_found_error(error):
    logger.warning(f"404 Error: {request.url}")
    return jsonify({'error': 'Resource not found'}), 404

@app.errorhandler(500)
def internal_error(error):
    logger.error(f"500 Error: {error}", exc_info=True)
    return jsonify({'error': 'Internal server error'}), 500

@app.errorhandler(Exception)
def unhandled_exception(e):
    logger.error(f"Unhandled Exception: {e}", exc_info=True)
    return jsonify({'error': str(e)}), 500

def main():
    parser = argparse.ArgumentParser(description='sqlpeek: read-only SQLite browsing API')
    parser.add_argument('--database', help='Path to the SQLite database to serve')
    parser.add_argument('--port', type=int, default=5000, help='Port to run on (default: 5000)')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind to (default: 127.0.0.1)')
    args = parser.parse_args()

    if args.database:
        configure(database_path=os.path.abspath(args.database))

    logger.info("=" * 60)
    logger.info(f"sqlpeek {VERSION} started")
    logger.info(f"Database: {_database_path()}")
    logger.info(f"Access control mode: {get_configuration().access_control_mode}")
    logger.info("=" * 60)

    app.run(
        host=args.host,
        port=args.port,
        debug=os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    )

if __name__ == '__main__':
    main()
