class DiscordUserMap:
    """Discord username → user id, used to turn Telegram @mentions into Discord pings.

    Filled by the Discord driver from the guild member lists it can see.
    Usernames compare case-insensitively.
    """

    def __init__(self):
        self._ids: dict[str, int] = {}

    def add(self, username: str, user_id: int) -> None:
        if username:
            self._ids[username.lower()] = user_id

    def lookup(self, username: str) -> int | None:
        return self._ids.get(username.lstrip("@").lower())

    def __len__(self) -> int:
        return len(self._ids)
