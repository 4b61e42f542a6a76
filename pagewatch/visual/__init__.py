from pagewatch.visual.models import ScreenshotPaths, VisualComparison
from pagewatch.visual.engine import VisualDiffer, compare_images, combine_report
