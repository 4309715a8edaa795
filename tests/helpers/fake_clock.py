import asyncio


class FakeClock:
    """
    Simulated wall clock. Pass the instance as `clock=` and `clock.sleep` as `sleep=`.
    sleep() parks the caller until advance() moves time past its deadline.
    """
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = float(start)
        self._sleepers = []  # (deadline, future)

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + float(delay), fut))
        await fut

    @property
    def sleepers(self) -> int:
        return len(self._sleepers)

    async def settle(self, rounds: int = 5) -> None:
        # let freshly created tasks reach their first await
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        await self.settle()
        self.now += float(seconds)
        due = [s for s in self._sleepers if s[0] <= self.now]
        self._sleepers = [s for s in self._sleepers if s[0] > self.now]
        for _, fut in due:
            if not fut.done():
                fut.set_result(None)
        await self.settle()
