from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType
from typing import Optional

from .assets.mysql_asset_repository import MySQLAssetRepository
from .assets.service import AssetService
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.service import AttendanceService
from .cashbook.mysql_cashbook_repository import MySQLCashTransactionRepository, MySQLOpeningBalanceRepository
from .cashbook.service import CashbookService
from .core.constants import DEFAULT_EMAIL_TIMEOUT_SECONDS, SYNC_CHANNEL_NAME
from .database.connection import DBConfig, DatabaseConnection
from .email.client import EmailNotifier
from .email.mailer import SmtpSettings, build_mailer
from .email.service import EmailDispatchService
from .grocery.mysql_grocery_repository import MySQLGroceryRepository
from .grocery.service import GroceryService
from .maintenance.mysql_maintenance_repository import MySQLMaintenanceRepository
from .maintenance.service import MaintenanceService
from .notifications.badge import BadgeService
from .notifications.fanout import Fanout
from .notifications.mysql_notification_repository import MySQLLastViewedRepository, MySQLNotificationRepository
from .notifications.service import NotificationService
from .purchases.mysql_purchase_repository import MySQLPurchaseRepository
from .purchases.service import PurchaseService
from .scrap.mysql_scrap_repository import MySQLScrapRepository
from .scrap.service import ScrapService
from .support.mysql_support_repository import MySQLSupportTicketRepository
from .support.service import SupportService
from .sync.broadcast import BroadcastChannel
from .sync.cache import QueryCache
from .sync.feed import ChangeFeed
from .sync.hub import SyncHub
from .tasks.mysql_task_repository import MySQLRescheduleRepository, MySQLTaskProofRepository, MySQLTaskRepository
from .tasks.proof_service import TaskProofService
from .tasks.service import TaskService
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    cache: QueryCache
    channel: BroadcastChannel
    feed: ChangeFeed
    hub: SyncHub

    users_repo: MySQLUserRepository
    notifications_repo: MySQLNotificationRepository
    last_viewed_repo: MySQLLastViewedRepository
    assets_repo: MySQLAssetRepository
    maintenance_repo: MySQLMaintenanceRepository
    purchases_repo: MySQLPurchaseRepository
    scrap_repo: MySQLScrapRepository
    tasks_repo: MySQLTaskRepository
    reschedules_repo: MySQLRescheduleRepository
    task_proofs_repo: MySQLTaskProofRepository
    cash_repo: MySQLCashTransactionRepository
    opening_balances_repo: MySQLOpeningBalanceRepository
    attendance_repo: MySQLAttendanceRepository
    support_repo: MySQLSupportTicketRepository
    grocery_repo: MySQLGroceryRepository

    email_notifier: EmailNotifier
    email_dispatch: EmailDispatchService

    auth_service: AuthService
    user_service: UserService
    notification_service: NotificationService
    fanout: Fanout
    asset_service: AssetService
    maintenance_service: MaintenanceService
    purchase_service: PurchaseService
    scrap_service: ScrapService
    task_service: TaskService
    task_proof_service: TaskProofService
    cashbook_service: CashbookService
    attendance_service: AttendanceService
    support_service: SupportService
    grocery_service: GroceryService
    badge_service: BadgeService


def _smtp_settings(settings: Optional[ModuleType]) -> SmtpSettings:
    return SmtpSettings(
        host=str(getattr(settings, "SMTP_HOST", "") or ""),
        port=int(getattr(settings, "SMTP_PORT", 587)),
        user=str(getattr(settings, "SMTP_USER", "") or ""),
        password=str(getattr(settings, "SMTP_PASSWORD", "") or ""),
        sender=str(getattr(settings, "SMTP_FROM", "") or ""),
        use_tls=bool(getattr(settings, "SMTP_USE_TLS", True)),
    )


def build_container(*, db_config: dict, settings: Optional[ModuleType] = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    cache = QueryCache()
    channel = BroadcastChannel(SYNC_CHANNEL_NAME)
    feed = ChangeFeed()
    hub = SyncHub(feed, channel, cache)

    users_repo = MySQLUserRepository(conn)
    notifications_repo = MySQLNotificationRepository(conn)
    last_viewed_repo = MySQLLastViewedRepository(conn)
    assets_repo = MySQLAssetRepository(conn)
    maintenance_repo = MySQLMaintenanceRepository(conn)
    purchases_repo = MySQLPurchaseRepository(conn)
    scrap_repo = MySQLScrapRepository(conn)
    tasks_repo = MySQLTaskRepository(conn)
    reschedules_repo = MySQLRescheduleRepository(conn)
    task_proofs_repo = MySQLTaskProofRepository(conn)
    cash_repo = MySQLCashTransactionRepository(conn)
    opening_balances_repo = MySQLOpeningBalanceRepository(conn)
    attendance_repo = MySQLAttendanceRepository(conn)
    support_repo = MySQLSupportTicketRepository(conn)
    grocery_repo = MySQLGroceryRepository(conn)

    email_notifier = EmailNotifier(
        str(getattr(settings, "EMAIL_API_BASE_URL", "") or ""),
        timeout=float(getattr(settings, "EMAIL_TIMEOUT_SECONDS", DEFAULT_EMAIL_TIMEOUT_SECONDS)),
    )
    email_dispatch = EmailDispatchService(build_mailer(_smtp_settings(settings)))

    auth_service = AuthService(users_repo)
    user_service = UserService(users_repo, feed)
    notification_service = NotificationService(notifications_repo, users_repo, feed)
    fanout = Fanout(notification_service, users_repo, email_notifier, feed)

    asset_service = AssetService(assets_repo, fanout)
    maintenance_service = MaintenanceService(maintenance_repo, asset_service, fanout)
    purchase_service = PurchaseService(purchases_repo, asset_service, fanout)
    scrap_service = ScrapService(scrap_repo, asset_service, user_service, fanout)
    task_service = TaskService(tasks_repo, reschedules_repo, user_service, fanout)
    task_proof_service = TaskProofService(tasks_repo, task_proofs_repo, fanout)
    cashbook_service = CashbookService(cash_repo, opening_balances_repo, fanout)
    attendance_service = AttendanceService(attendance_repo, user_service, fanout)
    support_service = SupportService(support_repo, fanout)
    grocery_service = GroceryService(grocery_repo, fanout)

    badge_service = BadgeService(
        {
            "maintenance": maintenance_service.badge_rows,
            "purchase": purchase_service.badge_rows,
            "scrap": scrap_service.badge_rows,
            "asset": asset_service.badge_rows,
            "task": task_service.badge_rows,
            "reschedule": task_service.reschedule_badge_rows,
            "cashbook": cashbook_service.badge_rows,
            "support": support_service.badge_rows,
            "grocery": grocery_service.badge_rows,
            "task-proofs": task_proof_service.badge_rows,
        },
        last_viewed_repo,
        channel,
    )

    return Container(
        conn=conn,
        cache=cache,
        channel=channel,
        feed=feed,
        hub=hub,
        users_repo=users_repo,
        notifications_repo=notifications_repo,
        last_viewed_repo=last_viewed_repo,
        assets_repo=assets_repo,
        maintenance_repo=maintenance_repo,
        purchases_repo=purchases_repo,
        scrap_repo=scrap_repo,
        tasks_repo=tasks_repo,
        reschedules_repo=reschedules_repo,
        task_proofs_repo=task_proofs_repo,
        cash_repo=cash_repo,
        opening_balances_repo=opening_balances_repo,
        attendance_repo=attendance_repo,
        support_repo=support_repo,
        grocery_repo=grocery_repo,
        email_notifier=email_notifier,
        email_dispatch=email_dispatch,
        auth_service=auth_service,
        user_service=user_service,
        notification_service=notification_service,
        fanout=fanout,
        asset_service=asset_service,
        maintenance_service=maintenance_service,
        purchase_service=purchase_service,
        scrap_service=scrap_service,
        task_service=task_service,
        task_proof_service=task_proof_service,
        cashbook_service=cashbook_service,
        attendance_service=attendance_service,
        support_service=support_service,
        grocery_service=grocery_service,
        badge_service=badge_service,
    )
