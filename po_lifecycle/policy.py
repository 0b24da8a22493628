# po_lifecycle/policy.py
from dataclasses import dataclass, field
from typing import Tuple, Optional

from po_lifecycle.config import config as default_config
from po_lifecycle.exceptions import ConfigError

DEFAULT_KNOWN_COLLECTIONS = (
    'ambroise', 'forte', 'hoxton', 'pm symmetric', 'vera', 'aviator', 'lowe',
    'emile', 'laura/tiff', 'laura', 'tiff', 'blume', 'soma', 'edendale',
)


@dataclass(frozen=True)
class EnginePolicy:
    """
    Immutable set of thresholds and exclusion rules shared by every engine
    component.

    Build one with from_config() and pass it to each service at construction.
    """

    inline_inspection_window_days: int = 14
    final_inspection_window_days: int = 7
    qa_test_window_days: int = 45

    initial_inspection_lead_days: int = 45
    inline_inspection_lead_days: int = 30
    final_inspection_lead_days: int = 14
    shipment_booking_lead_days: int = 21

    otd_min_year: int = 2024
    excluded_program_prefixes: Tuple[str, ...] = ('SMP ', '8X8 ')
    franchise_po_prefix: str = '089'

    significant_variance_pct: float = 10.0
    projection_threshold_days: int = 90
    known_mto_collections: Tuple[str, ...] = DEFAULT_KNOWN_COLLECTIONS

    chunk_size: int = 500
    stop_on_error: bool = False
    excused_reasons: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in (
            'inline_inspection_window_days', 'final_inspection_window_days',
            'qa_test_window_days', 'projection_threshold_days', 'chunk_size',
        ):
            value = getattr(self, name)
            if value is None or value < 0:
                raise ConfigError(f"Policy value {name} must be non-negative, got {value}")
        if self.chunk_size == 0:
            raise ConfigError("Policy value chunk_size must be positive")

    @classmethod
    def from_config(cls, cfg=None, excused_reasons: Optional[Tuple[str, ...]] = None) -> 'EnginePolicy':
        """Build a policy from the BUSINESS_RULES and BATCH_PROCESS sections.

        Args:
            cfg: Config instance (defaults to the global config)
            excused_reasons: Late-cause reasons that count as on time for Original OTD

        Returns:
            EnginePolicy
        """
        cfg = cfg or default_config
        rules = cfg.business_rules
        batch = cfg.batch_config

        return cls(
            inline_inspection_window_days=rules['inline_inspection_window_days'],
            final_inspection_window_days=rules['final_inspection_window_days'],
            qa_test_window_days=rules['qa_test_window_days'],
            initial_inspection_lead_days=rules['initial_inspection_lead_days'],
            inline_inspection_lead_days=rules['inline_inspection_lead_days'],
            final_inspection_lead_days=rules['final_inspection_lead_days'],
            shipment_booking_lead_days=rules['shipment_booking_lead_days'],
            otd_min_year=rules['otd_min_year'],
            excluded_program_prefixes=tuple(rules['excluded_program_prefixes']),
            franchise_po_prefix=rules['franchise_po_prefix'],
            significant_variance_pct=rules['significant_variance_pct'],
            projection_threshold_days=rules['projection_threshold_days'],
            known_mto_collections=tuple(rules['known_mto_collections']) or DEFAULT_KNOWN_COLLECTIONS,
            chunk_size=batch['chunk_size'],
            stop_on_error=batch['stop_on_error'],
            excused_reasons=tuple(excused_reasons or ()),
        )


DEFAULT_POLICY = EnginePolicy()
