"""Demo: two observers on one conversation, one of them drops and resumes.

Runs fully in-process (no HTTP): a SessionRegistry with the simulated
producer, a steady observer, and a flaky observer that disconnects halfway
and re-attaches with the last sequence it received.

Run with:
  uv run python examples/resume_demo.py
"""
import asyncio

from stream_relay.streaming import Chunk, SessionRegistry, SimulatedProducer


class PrintSink:
    def __init__(self, name: str):
        self.name = name
        self.last_sequence = -1
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: Chunk) -> None:
        self.last_sequence = chunk.sequence
        print(f"  [{self.name:>6}] seq={chunk.sequence:<3} {chunk.status.value:<9} {chunk.content}")

    def close(self) -> None:
        self._closed = True


async def main():
    print("\n📡 RESUMABLE STREAM DEMO\n")

    registry = SessionRegistry(producer_factory=lambda: SimulatedProducer(delay=0.05))
    async with registry:
        session = await registry.get_or_create("demo", "hello")

        steady = PrintSink("steady")
        await session.attach_observer("steady", steady)

        flaky = PrintSink("flaky")
        await session.attach_observer("flaky", flaky)

        await asyncio.sleep(0.3)
        print(f"\n  ✂ flaky disconnects at seq={flaky.last_sequence}\n")
        await session.detach_observer("flaky")

        await asyncio.sleep(0.3)
        print(f"\n  ↻ flaky resumes from seq={flaky.last_sequence}\n")
        resumed = PrintSink("flaky")
        resumed.last_sequence = flaky.last_sequence
        await session.attach_observer("flaky", resumed, flaky.last_sequence)

        await session.wait_finished()
        print(f"\n  ✓ status={session.status.value} last_sequence={session.last_sequence}")

        print("\n  Late observer attaching at the final sequence:")
        await session.attach_observer("late", PrintSink("late"), session.last_sequence)


if __name__ == "__main__":
    asyncio.run(main())
