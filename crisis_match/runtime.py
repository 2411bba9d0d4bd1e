"""Wires the matching components together around one event bus."""

from typing import Optional

from crisis_match.audit.ledger import DecisionLedger
from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.cultural.engine import CulturalCompatibilityEngine
from crisis_match.emergency.pool import EmergencyPoolManager
from crisis_match.events.bus import EventBus
from crisis_match.matching.engine import MatchEngine
from crisis_match.models.config import (
    CulturalConfig,
    EmergencyPoolConfig,
    MatchingConfig,
    MonitorConfig,
    QualityConfig,
    RegistryConfig,
    WorkloadConfig,
)
from crisis_match.monitoring.loop import WorkloadMonitor
from crisis_match.profiles.store import InMemoryProfileStore, ResponderProfileStore
from crisis_match.quality.tracker import QualityTracker
from crisis_match.settings import Settings
from crisis_match.workload.assessor import WorkloadAssessor


class MatchingRuntime:
    def __init__(
        self,
        profile_store: Optional[ResponderProfileStore] = None,
        registry_config: Optional[RegistryConfig] = None,
        workload_config: Optional[WorkloadConfig] = None,
        quality_config: Optional[QualityConfig] = None,
        cultural_config: Optional[CulturalConfig] = None,
        pool_config: Optional[EmergencyPoolConfig] = None,
        matching_config: Optional[MatchingConfig] = None,
        monitor_config: Optional[MonitorConfig] = None,
        ledger: Optional[DecisionLedger] = None,
    ):
        self.event_bus = EventBus()
        self.profile_store = profile_store if profile_store is not None else InMemoryProfileStore()
        self.registry = AvailabilityRegistry(config=registry_config, event_bus=self.event_bus)
        self.quality = QualityTracker(self.profile_store, config=quality_config)
        self.workload = WorkloadAssessor(
            self.registry,
            profile_store=self.profile_store,
            quality_tracker=self.quality,
            config=workload_config,
            event_bus=self.event_bus,
            budgets=matching_config.budgets if matching_config else None,
        )
        self.cultural = CulturalCompatibilityEngine(
            self.profile_store,
            config=cultural_config,
            budgets=matching_config.budgets if matching_config else None,
        )
        self.emergency_pool = EmergencyPoolManager(
            self.registry,
            self.profile_store,
            workload=self.workload,
            config=pool_config,
            event_bus=self.event_bus,
        )
        self.engine = MatchEngine(
            registry=self.registry,
            profile_store=self.profile_store,
            workload=self.workload,
            quality=self.quality,
            cultural=self.cultural,
            emergency_pool=self.emergency_pool,
            config=matching_config,
            event_bus=self.event_bus,
        )
        self.monitor = WorkloadMonitor(
            self.registry,
            self.workload,
            emergency_pool=self.emergency_pool,
            config=monitor_config,
            event_bus=self.event_bus,
        )
        self.ledger = ledger if ledger is not None else DecisionLedger()
        self.ledger.attach(self.event_bus)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        profile_store: Optional[ResponderProfileStore] = None,
    ) -> "MatchingRuntime":
        return cls(
            profile_store=profile_store,
            registry_config=RegistryConfig(
                heartbeat_staleness_seconds=settings.heartbeat_staleness_seconds,
                default_max_concurrent_sessions=settings.default_max_concurrent_sessions,
            ),
            pool_config=EmergencyPoolConfig(
                rotation_interval_hours=settings.pool_rotation_interval_hours,
                rotation_schedule=settings.pool_rotation_schedule,
                overlap_minutes=settings.pool_overlap_minutes,
            ),
            matching_config=MatchingConfig(
                viability_threshold=settings.viability_threshold,
                max_reservation_attempts=settings.max_reservation_attempts,
            ),
            monitor_config=MonitorConfig(interval_seconds=settings.monitor_interval_seconds),
            ledger=DecisionLedger(db_path=settings.audit_db_path),
        )
