"""Logging configuration."""

from server.settings.components import config

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
        },
    },
    'loggers': {
        'server.apps.attachments': {
            'handlers': ['console'],
            'level': config('ATTACHMENTS_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}
