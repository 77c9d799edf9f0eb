"""Allow running the webhook with ``python -m internallb_webhook``."""

from internallb_webhook.app import main

main()
