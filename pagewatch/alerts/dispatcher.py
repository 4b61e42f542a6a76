from typing import Dict, Iterable, List

from pagewatch.alerts.models import AlertChannel, AlertDeliveryRecord, DispatchReport
from pagewatch.alerts.sinks import AlertSink
from pagewatch.core import logger


class AlertDispatcher:
    """
    FLOW: Resolves the target's alert channels -> Hands the change to each channel's sink ->
    Collects per-endpoint records -> Returns a DispatchReport.

    Invariants:
    - One failing endpoint or sink never aborts delivery to the rest of the batch.
    - Callers decide whether a change warrants alerting; every call delivers.
    """

    def __init__(self, sinks: Iterable[AlertSink]):
        self.sinks: Dict[AlertChannel, AlertSink] = {sink.channel: sink for sink in sinks}

    def dispatch(self, target, result) -> DispatchReport:
        records: List[AlertDeliveryRecord] = []

        # Stable channel order keeps reports reproducible
        for channel in sorted(target.alert_channels, key=lambda c: c.value):
            sink = self.sinks.get(channel)
            if sink is None:
                logger.warning(f"[ALERT] No sink configured for channel {channel.value} ({target.target_id})")
                records.append(AlertDeliveryRecord(
                    endpoint_id=f"{channel.value}:{target.target_id}",
                    channel=channel,
                    success=False,
                    error_message=f"no sink configured for {channel.value}",
                ))
                continue

            try:
                records.extend(sink.deliver(target, result))
            except Exception as e:
                logger.exception(f"[ALERT] {channel.value} sink crashed for {target.target_id}")
                records.append(AlertDeliveryRecord(
                    endpoint_id=f"{channel.value}:{target.target_id}",
                    channel=channel,
                    success=False,
                    error_message=str(e),
                ))

        report = DispatchReport(target_id=target.target_id, records=records)
        logger.info(
            f"[ALERT] Dispatched {target.target_id}: "
            f"{len(report.succeeded)} delivered, {len(report.failed)} failed"
        )
        return report
