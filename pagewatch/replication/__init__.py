from pagewatch.replication.models import (
    AssetCounts,
    AssetKind,
    AssetLimits,
    CloneStage,
    ReplicationBundle,
    SkippedAsset,
)
from pagewatch.replication.assets import AssetDownloader
from pagewatch.replication.engine import ReplicationEngine, output_dir_for
