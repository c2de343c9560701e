"""
HaloTrack Conversions - attribution of leads and orders to marketing touches.

Provides:
- Platform-agnostic conversion schema
- Normalizers for WooCommerce, Shopify, custom orders and form leads
- Identity resolution (session id, email, phone, customer id)
- Multi-touch credit allocation and per-channel pipeline aggregation
- Ingestion with ad-platform forwarding, reporting and data erasure
- Ad spend import, joined into ROAS, CPA and cost-per-lead reporting

The key insight: a conversion is resolved to a session once, at ingestion,
and a snapshot of that session's attribution is stored with it. The
touchpoint journal is replayed only at reporting time, under whichever
model the report asks for.

Usage:
    from halotrack.conversions import (
        AttributionModel,
        ConversionIngestor,
        detect_order_normalizer,
        aggregate_pipeline,
    )

    conversion = detect_order_normalizer(body, client_id="acme").normalize(body)
    result = ConversionIngestor(sessions, conversions, settings).ingest(conversion)

    report = aggregate_pipeline(won_and_open, journeys, AttributionModel.LINEAR)
"""

from halotrack.conversions.attribution import (
    DIRECT_CHANNEL,
    allocate_credit,
    channel_key,
    is_marketing_touch,
)
from halotrack.conversions.config import AttributionConfig
from halotrack.conversions.exceptions import ConversionError, NormalizationError, StoreError
from halotrack.conversions.identity import IdentityResolver
from halotrack.conversions.ingestion import ConversionIngestor, IngestionResult
from halotrack.conversions.normalizer import (
    ConversionNormalizer,
    CustomOrderNormalizer,
    FormLeadNormalizer,
    ShopifyNormalizer,
    WooCommerceNormalizer,
    detect_order_normalizer,
)
from halotrack.conversions.pipeline import PipelineReport, SourceCredit, aggregate_pipeline
from halotrack.conversions.privacy import ErasureResult, erase_customer_data
from halotrack.conversions.reporting import (
    AttributionReporter,
    ChannelRevenue,
    LeadsSummary,
    ReportRequest,
    RevenueSummary,
)
from halotrack.conversions.schema import (
    AttributionModel,
    Conversion,
    ConversionType,
    LeadStatus,
    MatchType,
    OrderItem,
)
from halotrack.conversions.snapshot import build_attribution_snapshot, days_to_convert
from halotrack.conversions.spend import AdSpend, SourceSpend, parse_spend_entries, spend_by_source
from halotrack.conversions.store import AdSpendStore, ConversionStore

__all__ = [
    # Schema
    "Conversion",
    "ConversionType",
    "OrderItem",
    "LeadStatus",
    "MatchType",
    "AttributionModel",
    # Normalizers
    "ConversionNormalizer",
    "WooCommerceNormalizer",
    "ShopifyNormalizer",
    "CustomOrderNormalizer",
    "FormLeadNormalizer",
    "detect_order_normalizer",
    # Resolution
    "IdentityResolver",
    "build_attribution_snapshot",
    "days_to_convert",
    # Attribution
    "allocate_credit",
    "channel_key",
    "is_marketing_touch",
    "DIRECT_CHANNEL",
    "aggregate_pipeline",
    "PipelineReport",
    "SourceCredit",
    # Services
    "ConversionIngestor",
    "IngestionResult",
    "AttributionReporter",
    "ReportRequest",
    "RevenueSummary",
    "ChannelRevenue",
    "LeadsSummary",
    # Ad spend
    "AdSpend",
    "SourceSpend",
    "parse_spend_entries",
    "spend_by_source",
    "erase_customer_data",
    "ErasureResult",
    # Config, storage and errors
    "AttributionConfig",
    "ConversionStore",
    "AdSpendStore",
    "ConversionError",
    "NormalizationError",
    "StoreError",
]
