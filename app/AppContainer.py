# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-12
# Description: AppContainer.py
# -----------------------------------------------------------------------------
from functools import lru_cache
from typing import Optional

import settings
from cache.RedisExclusionCache import RedisExclusionCache
from chat.OpenAIChat import OpenAIChat
from config.Config import Config
from embedding.RecordEmbedder import RecordEmbedder
from generation.GenerativeFallback import GenerativeFallback
from health.TestRunner import TestRunner
from retrieval.VectorRetriever import VectorRetriever
from services.LabelBatchService import LabelBatchService
from services.LabelEngine import LabelEngine
from services.RecommendationOrchestrator import RecommendationOrchestrator
from services.SelectionService import SelectionService
from services.TodayMissionService import TodayMissionService
from store.ChromaRecordStore import ChromaRecordStore
from store.SqlRecordCatalog import SqlRecordCatalog
from userprofile.ProfileProvider import InMemoryProfileProvider, ProfileProvider
from userprofile.UserCategoryRegistry import InMemoryUserCategoryRegistry, UserCategoryRegistry
from utility.logging_utils import get_class_logger


class AppContainer:
    """
    Owns heavy object instantiation and application wiring.

    Profile and category-registration data belong to the host application;
    pass its providers in. The in-memory ones are only a local default.
    """

    def __init__(
            self,
            cfg: Optional[Config] = None,
            *,
            profiles: Optional[ProfileProvider] = None,
            registry: Optional[UserCategoryRegistry] = None,
    ) -> None:
        self.logger = get_class_logger(self.__class__)

        # Configuration
        self.cfg = cfg or Config.from_env()
        self.logger.info("Config: %s", self.cfg.summary())

        # External services
        self.embedder = RecordEmbedder(cfg=self.cfg, timeout=settings.EXTERNAL_TIMEOUT_SECONDS)
        self.openai_chat = OpenAIChat(cfg=self.cfg, timeout=settings.EXTERNAL_TIMEOUT_SECONDS)

        # Record stores (SQL catalog + Chroma index each)
        self.interest_store = ChromaRecordStore(
            cfg=self.cfg,
            catalog=SqlRecordCatalog(self.cfg.database_url, settings.INTEREST_COLLECTION),
            collection_name=settings.INTEREST_COLLECTION,
        )
        self.mission_store = ChromaRecordStore(
            cfg=self.cfg,
            catalog=SqlRecordCatalog(
                self.cfg.database_url,
                settings.MISSION_COLLECTION,
                engine=self.interest_store.catalog.engine,
            ),
            collection_name=settings.MISSION_COLLECTION,
            client=self.interest_store.client,
        )

        # Exclusion cache
        self.exclusion_cache = RedisExclusionCache(self.cfg.redis_url)

        # Collaborators owned by the host application
        self.profiles = profiles or InMemoryProfileProvider()
        self.registry = registry or InMemoryUserCategoryRegistry()

        # Engine
        self.fallback = GenerativeFallback(chat=self.openai_chat)
        self.interest_retriever = VectorRetriever(self.interest_store, self.embedder)
        self.mission_retriever = VectorRetriever(self.mission_store, self.embedder)
        self.orchestrator = RecommendationOrchestrator(
            interest_store=self.interest_store,
            mission_store=self.mission_store,
            interest_retriever=self.interest_retriever,
            mission_retriever=self.mission_retriever,
            fallback=self.fallback,
        )
        self.today_missions = TodayMissionService(
            orchestrator=self.orchestrator,
            interest_store=self.interest_store,
            mission_store=self.mission_store,
            registry=self.registry,
            cache=self.exclusion_cache,
            profiles=self.profiles,
        )
        self.selection = SelectionService(
            interest_store=self.interest_store,
            mission_store=self.mission_store,
            embedder=self.embedder,
            registry=self.registry,
        )
        self.label_engine = LabelEngine(
            store=self.mission_store,
            embedder=self.embedder,
            fallback=self.fallback,
        )
        self.label_batch = LabelBatchService(store=self.mission_store, engine=self.label_engine)

        # Smoke tests / health
        self.test_runner = TestRunner(
            embedder=self.embedder,
            chat=self.openai_chat,
            interest_store=self.interest_store,
            mission_store=self.mission_store,
            cache=self.exclusion_cache,
        )

    async def aclose(self) -> None:
        # both catalogs share one engine
        await self.interest_store.catalog.dispose()
        await self.exclusion_cache.close()


@lru_cache
def get_container() -> AppContainer:
    return AppContainer()
