from pagewatch.detection.models import ChangeResult, ChangeType
from pagewatch.detection.engine import ChangeDetector
