"""Command-line entry point: ask the configured provider one question."""
import asyncio
import logging
import os
import sys
from pathlib import Path

from chatstream.config import load_config
from chatstream.dispatcher import EventLoopOwner
from chatstream.models import Query
from chatstream.service import ChatService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


class StdoutSink:
    """Prints each chunk on its own line."""

    def deliver(self, text: str) -> None:
        print(text, flush=True)


async def ask(text: str) -> int:
    """Run one query, printing chunks from the event loop thread."""
    env_path = Path(os.getenv("CHATSTREAM_ENV_FILE", ".env"))
    config = load_config(env_file=env_path)
    if config.debug:
        logging.getLogger("chatstream").setLevel(logging.DEBUG)

    owner = EventLoopOwner(asyncio.get_running_loop())
    with ChatService(StdoutSink(), owner=owner) as service:
        future = service.submit(Query(text=text), config)
        outcome = await asyncio.wrap_future(future)
    # Let queued deliveries run before returning.
    await asyncio.sleep(0)
    return 0 if outcome.ok else 1


def main():
    """Main entry point."""
    text = " ".join(sys.argv[1:]).strip()
    if not text:
        print("usage: chatstream <question>", file=sys.stderr)
        sys.exit(2)
    sys.exit(asyncio.run(ask(text)))


if __name__ == "__main__":
    main()
