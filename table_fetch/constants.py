import os

from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

# Fetch Constants
DEFAULT_PAGE_SIZE = int(os.getenv("TABLE_FETCH_DEFAULT_PAGE_SIZE", "10000"))
QUERY_TIMEOUT_SECONDS = float(os.getenv("TABLE_FETCH_QUERY_TIMEOUT_SECONDS", "0"))

# Separates the table name from the column name in a watermark state key.
STATE_KEY_DELIMITER = "@!@"

# Attribute names written on every generated page
ATTRIBUTE_PREFIX = "tablefetch"
FRAGMENT_IDENTIFIER = "fragment.identifier"
FRAGMENT_COUNT = "fragment.count"
FRAGMENT_INDEX = "fragment.index"

# State Store Constants
STATE_STORE_BACKEND = os.getenv("TABLE_FETCH_STATE_STORE_BACKEND", "memory")
STATE_STORE_FILE_PATH = os.getenv(
    "TABLE_FETCH_STATE_FILE_PATH", "./local/tmp/table-fetch/state.json"
)
STATE_COMPONENT_ID = os.getenv("TABLE_FETCH_STATE_COMPONENT_ID", "table-fetch")
# Attempts at recording a new key in the Dapr key index before giving up
STATE_INDEX_RETRIES = int(os.getenv("TABLE_FETCH_STATE_INDEX_RETRIES", "5"))

# DAPR Constants
STATE_STORE_NAME = os.getenv("STATE_STORE_NAME", "statestore")

# Logger Constants
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
