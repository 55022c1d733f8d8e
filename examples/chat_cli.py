"""Interactive streaming chat in the terminal.

Demonstrates:
- Building a Runner from a provider
- Printing canonical events as they stream
- Stopping a turn with Ctrl-C without leaving the chat

Usage:
    uv run --env-file=.env examples/chat_cli.py --provider openai --model gpt-4o-mini
    uv run examples/chat_cli.py --provider anthropic --trace
"""

import argparse
import asyncio
import logging
import signal

from chatstream.events import TextToken, ToolContent, ToolStart
from chatstream.provider import (
    AnthropicProvider,
    GeminiProvider,
    ModelProvider,
    OpenAIProvider,
)
from chatstream.runner import Runner, SendParams
from chatstream.session import Session
from chatstream.state import TurnState

PROVIDERS = {
    "openai": lambda url: OpenAIProvider(base_url=url) if url else OpenAIProvider(),
    "anthropic": lambda url: AnthropicProvider(base_url=url) if url else AnthropicProvider(),
    "gemini": lambda url: GeminiProvider(base_url=url),
}


def make_provider(provider: str, url: str | None) -> ModelProvider:
    return PROVIDERS[provider](url)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from chatstream.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


def echo(send):
    """Wrap a send function so streamed text is printed as it arrives."""

    async def wrapped(params: SendParams) -> None:
        forward = params.on_event

        def on_event(event):
            if isinstance(event, (TextToken, ToolContent)):
                print(event.content, end="", flush=True)
            elif isinstance(event, ToolStart):
                print(f"\n[tool: {event.tool_name}]", flush=True)
            forward(event)

        params.on_event = on_event
        await send(params)

    return wrapped


async def main():
    parser = argparse.ArgumentParser(description="Streaming chat")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="")
    parser.add_argument("--url", default=None)
    parser.add_argument("--max-messages", type=int, default=0)
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    if args.trace:
        setup_tracing("chat-cli")

    provider = make_provider(args.provider, args.url)
    runner = Runner.from_provider(
        provider, session=Session(max_messages=args.max_messages),
    )
    runner.send = echo(runner.send)

    loop = asyncio.get_running_loop()
    print(f"Chatting with {provider.name} (Ctrl-C stops a reply)\n")

    while True:
        try:
            user_input = await loop.run_in_executor(None, input, "You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        print("Assistant: ", end="", flush=True)
        loop.add_signal_handler(signal.SIGINT, runner.stop)
        try:
            result = await runner.send_message(user_input, args.model)
        finally:
            loop.remove_signal_handler(signal.SIGINT)

        if result is None:
            print()
        elif result.status is TurnState.CANCELLED:
            print(" [stopped]\n")
        elif result.status is TurnState.FAILED:
            print(f"\n[error: {result.error}]\n")
        else:
            print("\n")


if __name__ == "__main__":
    asyncio.run(main())
