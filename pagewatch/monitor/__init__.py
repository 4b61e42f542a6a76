from pagewatch.monitor.models import AlertTrigger, MonitorTarget, Schedule
from pagewatch.monitor.storage import InMemoryMonitorStore, MonitorStore
from pagewatch.monitor.service import CheckOutcome, MonitorService
from pagewatch.monitor.scheduler import MonitorScheduler
