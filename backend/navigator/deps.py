from functools import lru_cache

from fastapi import Depends
from pymongo import MongoClient

from .config import Settings
from .services.ai_query import AiQueryService
from .services.gemini import GeminiGateway
from .services.mongo import client_provider


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()


def get_client(settings: Settings = Depends(get_settings)) -> MongoClient:
    return client_provider.get(settings)


def get_gateway(settings: Settings = Depends(get_settings)) -> GeminiGateway:
    return GeminiGateway(settings)


def get_ai_service(
    settings: Settings = Depends(get_settings),
    client: MongoClient = Depends(get_client),
    gateway: GeminiGateway = Depends(get_gateway),
) -> AiQueryService:
    return AiQueryService(settings, client, gateway)
