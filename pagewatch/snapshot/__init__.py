from pagewatch.snapshot.models import Snapshot
from pagewatch.snapshot.extractor import SnapshotExtractor, extract_prices, hash_content
from pagewatch.snapshot.storage import SnapshotStore, InMemorySnapshotStore, build_snapshot_store
