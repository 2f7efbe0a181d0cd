"""
Basic usage example of EbicsClient.

This example walks a new subscriber through the key exchange (INI, HIA,
HPB) and downloads the account statements of the last week. Bank and
subscriber come from the EBICS_* environment variables; the key ring is
kept in keyring.json between runs, so each run picks up where the last
one stopped.
"""

import logging
import sys
from datetime import date, timedelta
from pathlib import Path

# Add the project root to the path to import ebicsclient
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ebicsclient import EbicsClient, EbicsError, KeyRingState
from ebicsclient.client.infrastructure.config_loader import ConfigLoader


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    settings = ConfigLoader()
    try:
        client = EbicsClient(
            bank=settings.load_bank(),
            user=settings.load_user(),
            key_ring=settings.load_key_ring(),
        )

        steps = {
            KeyRingState.EMPTY: client.submit_signature_key,
            KeyRingState.SIGNATURE_PENDING: client.submit_encryption_auth_keys,
            KeyRingState.KEYS_SUBMITTED: client.retrieve_bank_keys,
        }
        while client.state in steps:
            response = steps[client.state]()
            if not response.is_success:
                logger.error("Bank answered %s %s", response.code, response.report_text)
                sys.exit(1)
            settings.save_key_ring(client.key_ring)
            logger.info("Key ring is now %s", client.state.value)
            if client.state is KeyRingState.KEYS_SUBMITTED:
                # The bank activates the subscriber once the signed letter arrives
                for role, digest in client.key_ring.letter().items():
                    logger.info("Letter hash %s: %s", role.version, digest)

        end = date.today()
        response = client.fetch_statement(end - timedelta(days=7), end)
        for transaction in response.transactions:
            print(transaction.document)
            client.send_receipt(transaction)
        logger.info("Statement download returned %s", response.code)
    except (EbicsError, ValueError):
        logger.exception("Error")
        sys.exit(1)


if __name__ == "__main__":
    main()
