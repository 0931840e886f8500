# config/logging.py

APP_LOGGERS = ('core', 'students', 'billing', 'promos', 'reservations', 'shared')


def build_logging(log_dir, level='INFO', app_level='DEBUG'):
    """Console plus file handlers; one logger per local app."""
    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'detailed': {
                'format': '{asctime} {levelname} [{name}:{lineno}] {message}',
                'style': '{',
            },
            'simple': {
                'format': '{levelname} {message}',
                'style': '{',
            },
        },
        'filters': {
            'require_debug_false': {
                '()': 'django.utils.log.RequireDebugFalse',
            },
        },
        'handlers': {
            'console': {
                'level': 'DEBUG',
                'class': 'logging.StreamHandler',
                'formatter': 'simple',
            },
            'file': {
                'level': 'INFO',
                'class': 'logging.FileHandler',
                'filename': str(log_dir / 'academy.log'),
                'formatter': 'detailed',
            },
            'error_file': {
                'level': 'ERROR',
                'class': 'logging.FileHandler',
                'filename': str(log_dir / 'error.log'),
                'formatter': 'detailed',
            },
            'mail_admins': {
                'level': 'ERROR',
                'class': 'django.utils.log.AdminEmailHandler',
                'filters': ['require_debug_false'],
            },
        },
        'loggers': {
            'django': {
                'handlers': ['console', 'file', 'mail_admins'],
                'level': level,
                'propagate': False,
            },
        },
        'root': {
            'handlers': ['console', 'file', 'error_file'],
            'level': level,
        },
    }
    for name in APP_LOGGERS:
        config['loggers'][name] = {
            'handlers': ['console', 'file', 'error_file'],
            'level': app_level,
            'propagate': False,
        }
    return config
