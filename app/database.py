import logging
from motor.motor_asyncio import AsyncIOMotorClient
from app.config import settings
from app.repositories.request import RequestRepository
from app.repositories.settlement import SettlementRepository
from app.repositories.project import ProjectRepository
from app.repositories.user import UserRepository
from app.repositories.audit import AuditRepository
from app.models.request import PaymentRequest
from app.models.settlement import Settlement
from app.models.project import Project
from app.models.user import AppUser
from app.models.audit import AuditEvent

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None

    # Repositories
    requests: RequestRepository = None
    settlements: SettlementRepository = None
    projects: ProjectRepository = None
    users: UserRepository = None
    audit: AuditRepository = None

    def connect(self):
        """Initialize database connection and repositories."""
        self.client = AsyncIOMotorClient(settings.MONGODB_URL)
        db = self.client[settings.DB_NAME]

        # Initialize repositories with their respective collections and models
        self.requests = RequestRepository(db.requests, PaymentRequest)
        self.settlements = SettlementRepository(db.settlements, Settlement)
        self.projects = ProjectRepository(db.projects, Project)
        self.users = UserRepository(db.users, AppUser)
        self.audit = AuditRepository(db.audit_log, AuditEvent)

        logger.info("Connected to MongoDB")

    def close(self):
        """Close database connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def start_session(self):
        """Client session for multi-document transactions (requires a replica set)."""
        return await self.client.start_session()

db = Database()

async def get_db() -> Database:
    """Dependency for FastAPI."""
    return db
