class RecordingSink:
    """
    Collects every message. `ok` is what send() reports; `raises` makes it throw.
    """
    def __init__(self, ok: bool = True, raises: Exception | None = None):
        self.ok = ok
        self.raises = raises
        self.messages = []

    async def send(self, text: str) -> bool:
        self.messages.append(text)
        if self.raises is not None:
            raise self.raises
        return self.ok

    def triggers(self):
        return [m for m in self.messages if "#PriceTrigger" in m]

    def multi(self):
        return [m for m in self.messages if "#MultiZoneTrigger" in m]

    def crossings(self, kind: str | None = None):
        out = [m for m in self.messages if "#ZoneCrossing" in m]
        if kind is not None:
            out = [m for m in out if m.rstrip().endswith(f"#{kind}")]
        return out
