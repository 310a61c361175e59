import os
from platformdirs import user_config_dir, user_data_dir

APP_NAME = "dbkeeper"
DBKEEPER_HOME = os.getenv("DBKEEPER_HOME", user_config_dir(APP_NAME))
DEFAULT_ENV_FILE = os.path.join(DBKEEPER_HOME, "dbkeeper.env")
DEFAULT_DATA_ROOT = os.getenv("DBKEEPER_DATA_ROOT", user_data_dir(APP_NAME))
