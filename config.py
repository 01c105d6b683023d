import logging
import os
from dotenv import load_dotenv

load_dotenv()

TG_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
PROXY_URL = os.getenv('PROXY_URL')

DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'lingua_cards.db')

# Cloud sync (KV REST API)
KV_REST_API_URL = os.getenv('KV_REST_API_URL', '').strip()
KV_REST_API_TOKEN = os.getenv('KV_REST_API_TOKEN', '').strip()
SYNC_DEBOUNCE_SECONDS = float(os.getenv('SYNC_DEBOUNCE_SECONDS', '2.0'))
SYNC_TIMEOUT_SECONDS = float(os.getenv('SYNC_TIMEOUT_SECONDS', '15'))

# Dictionary lookups / bulk import
MW_API_KEY = os.getenv('MW_API_KEY', '').strip()
DICT_TIMEOUT = float(os.getenv('DICT_TIMEOUT', '5'))
BULK_CONCURRENCY = int(os.getenv('BULK_CONCURRENCY', '3'))
BULK_ITEM_TIMEOUT = float(os.getenv('BULK_ITEM_TIMEOUT', '20'))

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
