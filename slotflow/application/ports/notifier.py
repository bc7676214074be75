from abc import ABC, abstractmethod


class NotifierPort(ABC):
    @abstractmethod
    async def notify_user(self, user_id: str, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def notify_admin(self, text: str) -> None:
        raise NotImplementedError
