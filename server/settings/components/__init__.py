"""Shared helpers for settings components."""

from pathlib import Path
from typing import Final

from decouple import AutoConfig

# Build paths inside the project: BASE_DIR.joinpath('some')
BASE_DIR: Final = Path(__file__).parent.parent.parent.parent

# Loading `.env` files
# See docs: https://pypi.org/project/python-decouple/
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))
