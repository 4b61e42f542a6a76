from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pagewatch.core import MAX_FONTS, MAX_IMAGES, MAX_SCRIPTS, MAX_STYLESHEETS


class CloneStage(Enum):
    STARTED = "started"
    FETCHING = "fetching"
    ASSET_COLLECTION = "asset_collection"
    REWRITING = "rewriting"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AssetKind(Enum):
    STYLESHEET = "css"
    SCRIPT = "js"
    IMAGE = "images"
    FONT = "fonts"


@dataclass(frozen=True)
class AssetLimits:
    stylesheets: int = MAX_STYLESHEETS
    scripts: int = MAX_SCRIPTS
    images: int = MAX_IMAGES
    fonts: int = MAX_FONTS


@dataclass(frozen=True)
class AssetCounts:
    images: int = 0
    stylesheets: int = 0
    scripts: int = 0
    fonts: int = 0


@dataclass(frozen=True)
class SkippedAsset:
    url: str
    kind: AssetKind
    reason: str


@dataclass(frozen=True)
class ReplicationBundle:
    """
    Result of one clone invocation.
    INVARIANT: the output directory is written by this invocation only.
    """
    url: str
    output_directory: str
    entry_document_path: Optional[str]
    asset_counts: AssetCounts
    success: bool
    stage: CloneStage
    failure_reason: Optional[str] = None
    skipped_assets: List[SkippedAsset] = field(default_factory=list)
    deployment_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "outputDirectory": self.output_directory,
            "entryDocumentPath": self.entry_document_path,
            "assets": {
                "images": self.asset_counts.images,
                "stylesheets": self.asset_counts.stylesheets,
                "scripts": self.asset_counts.scripts,
                "fonts": self.asset_counts.fonts,
            },
            "success": self.success,
            "stage": self.stage.value,
            "failureReason": self.failure_reason,
            "skippedAssets": [
                {"url": s.url, "kind": s.kind.value, "reason": s.reason}
                for s in self.skipped_assets
            ],
            "deploymentFiles": list(self.deployment_files),
        }
