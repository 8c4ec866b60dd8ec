"""
Encrypt the plaintext amounts of the seeded test user (PIN 1234).
Run after inserting seed rows:  python encrypt_seed_data.py
"""
import logging
import sys

from ledger.application.seed import SEED_USER_ID, encrypt_seed_data
from ledger.infrastructure.db.session import session_scope

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("encrypt_seed_data")

try:
    with session_scope() as db:
        result = encrypt_seed_data(db)
except Exception:
    logger.exception("Seed encryption failed, nothing was written")
    sys.exit(1)

print(f"User {SEED_USER_ID}:")
print(f"  key record: {'created' if result.key_record_created else 'already present'}")
for table, count in result.encrypted.counts.items():
    print(f"  {table}: {count} value(s) encrypted")
