from .change_channel_service import ChangeEvent, RedisChangeChannel, RedisSubscription

__all__ = ["ChangeEvent", "RedisChangeChannel", "RedisSubscription"]
