"""Demo: follow a conversation over HTTP with automatic resume.

Start the server first:
  uv run python -m stream_relay

Then:
  uv run python examples/client_demo.py "what is SSE?"
"""
import asyncio
import sys
import uuid

from stream_relay.client import ResumableStreamClient


async def main(message: str):
    conversation_id = f"demo-{uuid.uuid4().hex[:8]}"
    print(f"\n💬 Conversation {conversation_id}\n")

    async with ResumableStreamClient(base_url="http://localhost:3001") as client:
        async for chunk in client.stream(conversation_id, message=message):
            if chunk.content:
                print(f"\r  {chunk.content}", end="", flush=True)
            if chunk.error:
                print(f"\n  ✗ {chunk.error}")
        print("\n")

        status = await client.status(conversation_id)
        print(f"  status: {status}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "hello"))
