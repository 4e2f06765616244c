from __future__ import annotations

import logging
from dataclasses import dataclass

from carryover.core.calculator import CarryOverPlan, PlanAction, plan_delta, plan_report
from carryover.core.errors import TransportError, ValidationError
from carryover.core.report import ReportMap
from carryover.domain import ChangeRecord, RunMode, WorkerResult, WorkItem
from carryover.infrastructure.logs import UnitLog
from carryover.infrastructure.panel import PanelClient

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SENTINEL = "WORKER_EXIT"


@dataclass(frozen=True, slots=True)
class RunContext:
    """Read-only inputs shared by every worker of one run."""

    mode: RunMode
    client: PanelClient
    report_map: ReportMap | None = None


class CarryOverWorker:
    """Applies the carry-over of a single server.

    The reset call always comes first; the limit update is only sent after the
    panel confirmed the reset, and the plan id is sent back unchanged.
    """

    def __init__(self, context: RunContext) -> None:
        self._context = context

    def _plan(self, item: WorkItem, log: logging.Logger) -> CarryOverPlan:
        if self._context.mode is RunMode.REPORT:
            if self._context.report_map is None:
                raise ValidationError("report map missing")
            return plan_report(item.bandwidth_limit, item.ip_list, self._context.report_map, log)
        return plan_delta(item.bandwidth_limit, item.bandwidth_used, log)

    def _apply(
        self,
        item: WorkItem,
        plan: CarryOverPlan,
        client: PanelClient,
        log: logging.Logger,
    ) -> ChangeRecord | None:
        server_id = item.server_id

        if plan.action is PlanAction.RESET_ONLY:
            log.info("%s → unlimited plan (limit=0). Resetting usage only.", server_id)
            client.reset_usage(server_id)
            log.info("%s → usage reset OK", server_id)
            return None

        if plan.new_limit is None:
            raise ValidationError(f"no new limit computed for VPS {server_id}")
        if self._context.mode is RunMode.REPORT:
            log.info("%s → setting limit to remaining: %d GB", server_id, plan.new_limit)
        else:
            log.info("%s : %d/%d GB → 0/%d GB", server_id, plan.used, plan.limit, plan.new_limit)

        client.reset_usage(server_id)
        log.info("%s → usage reset OK", server_id)

        log.info(
            "%s → update payload: editvps=1 bandwidth=%d plid=%s",
            server_id,
            plan.new_limit,
            item.plan_id,
        )
        client.update_limit(server_id, plan.new_limit, item.plan_id)
        log.info("Limit updated (plan %s preserved)", item.plan_id)

        if self._context.mode is RunMode.REPORT:
            return ChangeRecord(server_id=server_id, plan_id=item.plan_id, new_limit=plan.new_limit)
        return ChangeRecord(
            server_id=server_id,
            plan_id=item.plan_id,
            new_limit=plan.new_limit,
            limit=plan.limit,
            used=plan.used,
        )

    def process(self, item: WorkItem) -> WorkerResult:
        unit_log = UnitLog(item.server_id)
        log = unit_log.logger
        if self._context.mode is RunMode.REPORT:
            ips = ",".join(item.ip_list or ())
            log.info(
                "Worker start: vpsid=%s limit=%s plid=%s ips=%s",
                item.server_id,
                item.bandwidth_limit,
                item.plan_id,
                ips,
            )
        else:
            log.info(
                "Worker start: vpsid=%s limit=%s used=%s plid=%s",
                item.server_id,
                item.bandwidth_limit,
                item.bandwidth_used,
                item.plan_id,
            )
        log.info("─ VPS %s", item.server_id)

        client = self._context.client.fork(log=log)
        change_record: ChangeRecord | None = None
        skipped = False
        status: int | None
        try:
            plan = self._plan(item, log)
            if plan.action is PlanAction.SKIP:
                log.info("%s : used (%d) > limit (%d); SKIPPED", item.server_id, plan.used, plan.limit)
                skipped = True
            else:
                change_record = self._apply(item, plan, client, log)
            status = EXIT_OK
        except (TransportError, ValidationError) as exc:
            log.error("%s → %s", item.server_id, exc)
            status = EXIT_FAILED
        except Exception:
            # no exit status: the unit is classified as crashed, its lines are still replayed
            log.exception("%s → worker crashed", item.server_id)
            status = None
        finally:
            client.close()

        if status == EXIT_OK:
            log.info("%s=%d", EXIT_SENTINEL, status)
        elif status is not None:
            log.error("%s=%d", EXIT_SENTINEL, status)

        return WorkerResult(
            server_id=item.server_id,
            exit_status=status,
            skipped=skipped,
            log_records=unit_log.records,
            log_lines=unit_log.lines,
            change_record=change_record,
        )


__all__ = ["CarryOverWorker", "RunContext", "EXIT_SENTINEL"]
