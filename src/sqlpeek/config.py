"""Service settings, read from SQLPEEK_* environment variables."""

import os

ACCESS_CONTROL_MODES = ('none', 'whitelist', 'blacklist')


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_list(name):
    value = os.environ.get(name, '')
    return [item.strip() for item in value.split(',') if item.strip()]


def _check_mode(mode):
    if mode not in ACCESS_CONTROL_MODES:
        raise ValueError(
            f"Invalid access control mode '{mode}'. "
            f"Allowed: {', '.join(ACCESS_CONTROL_MODES)}"
        )


def _parse_blocked_columns(entries):
    """Turn ['users.password', 'users.ssn'] into {'users': ['password', 'ssn']}."""
    blocked = {}
    for entry in entries:
        table, sep, column = entry.partition('.')
        if not sep or not table or not column:
            raise ValueError(f"Blocked column must look like table.column, got '{entry}'")
        blocked.setdefault(table, []).append(column)
    return blocked


class Configuration:
    """
    Runtime settings for validation, execution and access control.

    Defaults come from the environment when the object is created; use
    configure() to override them in code.
    """

    def __init__(self):
        self.max_query_length = _env_int('SQLPEEK_MAX_QUERY_LENGTH', 10000)
        self.max_records = _env_int('SQLPEEK_MAX_RECORDS', 10000)
        self.default_query_limit = _env_int('SQLPEEK_DEFAULT_QUERY_LIMIT', 100)
        self.query_timeout = _env_int('SQLPEEK_QUERY_TIMEOUT', 30)
        self.access_control_mode = os.environ.get('SQLPEEK_ACCESS_CONTROL_MODE', 'none').lower()
        self.allowed_tables = _env_list('SQLPEEK_ALLOWED_TABLES')
        self.blocked_tables = _env_list('SQLPEEK_BLOCKED_TABLES')
        self.blocked_columns = _parse_blocked_columns(_env_list('SQLPEEK_BLOCKED_COLUMNS'))
        self.database_path = os.environ.get('SQLPEEK_DATABASE') or None
        _check_mode(self.access_control_mode)

    def update(self, **overrides):
        for key in overrides:
            if key.startswith('_') or not hasattr(self, key):
                raise ValueError(f"Unknown configuration option: {key}")
        _check_mode(overrides.get('access_control_mode', self.access_control_mode))
        for key, value in overrides.items():
            setattr(self, key, value)


_configuration = None


def get_configuration():
    """Return the process-wide Configuration, creating it on first use."""
    global _configuration
    if _configuration is None:
        _configuration = Configuration()
    return _configuration


def configure(**overrides):
    """
    Override settings on the process-wide configuration.

    Raises:
        ValueError: For an unknown option or an invalid access control mode
    """
    config = get_configuration()
    config.update(**overrides)
    return config


def reset_configuration():
    """Drop overrides and re-read the environment on next access."""
    global _configuration
    _configuration = None
