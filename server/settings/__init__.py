"""
Main settings file.

Settings are split into components with django-split-settings.
Values that change per environment are read with python-decouple.
"""

from split_settings.tools import include

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
)
