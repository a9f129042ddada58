from pathlib import Path

from decouple import AutoConfig

# Build paths inside the project like this: BASE_DIR.joinpath('some')
BASE_DIR = Path(__file__).parent.parent.parent.parent

# Loads env values from `config/.env` and the process environment
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))
