"""ASGI entrypoint for the listing wizard API."""

from listing_wizard.api.app import create_app
from listing_wizard.containers import build_container

app = create_app(build_container())
