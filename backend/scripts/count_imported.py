import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from repo_sleep import SleepLogRepo
from settings import settings

source = sys.argv[1] if len(sys.argv) > 1 else settings.import_source_tag
print(f'{source} rows:', SleepLogRepo().count_imported(source))
