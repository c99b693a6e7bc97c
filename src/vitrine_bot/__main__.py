"""Ponto de entrada de linha de comando.

    python -m vitrine_bot serve [--host H] [--port P]   # webhook (FastAPI)
    python -m vitrine_bot poll                          # long polling
    python -m vitrine_bot set-webhook [--url URL]       # registra o webhook
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from vitrine_bot.adapters.telegram.client import create_telegram_client
from vitrine_bot.adapters.telegram.polling import PollingRunner
from vitrine_bot.application.factories import build_runtime
from vitrine_bot.config.settings import Settings, get_settings
from vitrine_bot.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _fail_on_invalid(errors: list[str]) -> None:
    if errors:
        raise SystemExit(f"Configuração inválida: {'; '.join(errors)}")


async def run_polling(settings: Settings) -> None:
    runtime = build_runtime(settings)
    runner = PollingRunner(
        runtime.telegram,
        runtime.dispatcher.handle,
        timeout_seconds=settings.telegram_polling_timeout_seconds,
        max_concurrent=settings.telegram_polling_max_concurrent,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            pass

    # getUpdates não funciona com webhook ativo
    await runtime.telegram.delete_webhook()
    runtime.maintenance.start()
    try:
        await runner.run()
    finally:
        await runtime.aclose()


async def register_webhook(settings: Settings, url: str) -> bool:
    async with create_telegram_client(settings) as client:
        return await client.set_webhook(url, settings.telegram_webhook_secret)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="vitrine_bot")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="serve the webhook API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("poll", help="run the long polling loop")

    hook = sub.add_parser("set-webhook", help="register the webhook URL with Telegram")
    hook.add_argument("--url", default=None)

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(
        settings.log_level, settings.service_name, json_output=not settings.is_development
    )

    if args.command == "serve":
        import uvicorn

        from vitrine_bot.api.app import create_app

        uvicorn.run(create_app(settings), host=args.host, port=args.port)
        return 0

    if args.command == "poll":
        _fail_on_invalid(settings.validate_all())
        asyncio.run(run_polling(settings))
        return 0

    _fail_on_invalid(settings.validate_telegram_config())
    url = args.url or settings.telegram_webhook_url
    if not url:
        raise SystemExit("TELEGRAM_WEBHOOK_URL não configurado (ou use --url)")
    ok = asyncio.run(register_webhook(settings, url))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
