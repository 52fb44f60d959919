"""Database models and setup for the PORTA'M validation service."""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional
import logging

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
    text,
    update,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from portam.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class UserDB(Base):
    """A rider."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, name={self.name})>"


class ZoneDB(Base):
    """A fare zone. Zone ids are meaningful: neighbouring zones have consecutive ids."""
    __tablename__ = "zones"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    def __repr__(self):
        return f"<Zone(id={self.id}, name={self.name})>"


class StationDB(Base):
    __tablename__ = "stations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    available = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Station(id={self.id}, name={self.name}, available={self.available})>"


class StationZoneDB(Base):
    """Many-to-many link between stations and zones."""
    __tablename__ = "station_zones"

    station_id = Column(Integer, ForeignKey("stations.id"), primary_key=True)
    zone_id = Column(Integer, ForeignKey("zones.id"), primary_key=True)


class SuportDB(Base):
    """A physical support. A null or future activation means inactive."""
    __tablename__ = "suports"

    uid = Column(BigInteger, primary_key=True, autoincrement=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    activation = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Suport(uid={self.uid}, user_id={self.user_id})>"


class TitleDB(Base):
    """A fare product template. Null limits mean unlimited / never / always pays."""
    __tablename__ = "titles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    uses = Column(Integer, nullable=True)
    expiration = Column(Integer, nullable=True)  # days from first use
    available = Column(DateTime(timezone=True), nullable=True)
    unavailable = Column(DateTime(timezone=True), nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    num_zones = Column(Integer, nullable=False, default=1)
    link = Column(Integer, nullable=True)  # minutes
    re_entry = Column(Integer, nullable=True)  # minutes

    def __repr__(self):
        return f"<Title(id={self.id}, name={self.name}, num_zones={self.num_zones})>"


class UserTitleDB(Base):
    """A title issued to a rider."""
    __tablename__ = "user_titles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title_id = Column(Integer, ForeignKey("titles.id"), nullable=False)
    uses_left = Column(Integer, nullable=True)
    first_use = Column(DateTime(timezone=True), nullable=True)
    expiration = Column(DateTime(timezone=True), nullable=True)
    re_entry = Column(Integer, nullable=True)
    zone_origin = Column(Integer, ForeignKey("zones.id"), nullable=True)
    active = Column(Boolean, nullable=False, default=False)
    link = Column(Integer, nullable=True)
    num_zones = Column(Integer, nullable=True)

    # At most one active title per rider
    __table_args__ = (
        Index(
            "uq_user_titles_one_active",
            "user_id",
            unique=True,
            sqlite_where=text("active = 1"),
            postgresql_where=text("active"),
        ),
    )

    def __repr__(self):
        return f"<UserTitle(id={self.id}, user_id={self.user_id}, active={self.active})>"


class UserTitleZoneDB(Base):
    """Zones covered by an issued title, fixed at first use."""
    __tablename__ = "user_title_zones"

    user_title_id = Column(Integer, ForeignKey("user_titles.id"), primary_key=True)
    zone_id = Column(Integer, ForeignKey("zones.id"), primary_key=True)


class ValidationDB(Base):
    """Append-only ledger of successful taps."""
    __tablename__ = "validations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    suport_id = Column(BigInteger, ForeignKey("suports.uid"), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    station_id = Column(Integer, ForeignKey("stations.id"), nullable=False)
    enter = Column(Boolean, nullable=False, default=True)  # direction, always true for now
    user_title_id = Column(Integer, ForeignKey("user_titles.id"), nullable=False)

    __table_args__ = (
        Index("ix_validations_user_title_timestamp", "user_title_id", "timestamp"),
        Index("ix_validations_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self):
        return (
            f"<Validation(id={self.id}, user_title_id={self.user_title_id}, "
            f"station_id={self.station_id}, timestamp={self.timestamp})>"
        )


class DatabaseManager:
    """Manager class for database operations."""

    def __init__(self, database_url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy URL, defaults to DATABASE_URL
            timeout: Seconds any connection checkout or statement may wait
        """
        self.database_url = database_url or settings.DATABASE_URL
        if timeout is None:
            timeout = settings.DB_TIMEOUT_SECONDS

        # Bound every store call so a stuck database surfaces as an error
        if self.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": timeout}
            engine_options = {}
        else:
            connect_args = {}
            if self.database_url.startswith("postgresql"):
                connect_args["options"] = f"-c statement_timeout={timeout * 1000}"
            engine_options = {"pool_pre_ping": True, "pool_timeout": timeout}

        self.engine = create_engine(self.database_url, connect_args=connect_args, **engine_options)

        # Create session factory
        self.SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=self.engine)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Unit of work: commits when the block exits normally and rolls back
        everything written in the block when it raises.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Record helpers used by the management script and the tests.

    def add_zone(self, zone_id: int, name: Optional[str] = None, description: Optional[str] = None):
        with self.transaction() as session:
            session.add(ZoneDB(id=zone_id, name=name or f"Zone {zone_id}", description=description))

    def add_station(self, station_id: int, name: str, zone_ids: Iterable[int], available: bool = True):
        with self.transaction() as session:
            session.add(StationDB(id=station_id, name=name, available=available))
            session.flush()
            for zone_id in zone_ids:
                session.add(StationZoneDB(station_id=station_id, zone_id=zone_id))

    def add_user(self, name: str, email: Optional[str] = None) -> int:
        with self.transaction() as session:
            user = UserDB(name=name, email=email)
            session.add(user)
            session.flush()
            return user.id

    def add_suport(self, uid: int, user_id: Optional[int], activation: Optional[datetime] = None):
        with self.transaction() as session:
            session.add(SuportDB(uid=uid, user_id=user_id, activation=activation))

    def add_title(
        self,
        name: str,
        num_zones: int = 1,
        uses: Optional[int] = None,
        expiration: Optional[int] = None,
        link: Optional[int] = None,
        re_entry: Optional[int] = None,
        price: float = 0.0,
        description: Optional[str] = None,
    ) -> int:
        """Create a fare product template and return its id."""
        with self.transaction() as session:
            title = TitleDB(
                name=name,
                description=description,
                uses=uses,
                expiration=expiration,
                price=price,
                num_zones=num_zones,
                link=link,
                re_entry=re_entry,
            )
            session.add(title)
            session.flush()
            return title.id

    def assign_title(self, user_id: int, title_id: int) -> int:
        """
        Issue a title to a rider. Limits are copied from the template; the
        issued title starts inactive and uninitialised.
        """
        with self.transaction() as session:
            title = session.get(TitleDB, title_id)
            if title is None:
                raise ValueError(f"Title {title_id} not found")
            user_title = UserTitleDB(
                user_id=user_id,
                title_id=title.id,
                uses_left=title.uses,
                re_entry=title.re_entry,
                link=title.link,
                num_zones=title.num_zones,
                active=False,
            )
            session.add(user_title)
            session.flush()
            logger.info("Assigned title %s to user %s as user_title %s", title_id, user_id, user_title.id)
            return user_title.id

    def activate_user_title(self, user_title_id: int):
        """Make a title the rider's only active one."""
        with self.transaction() as session:
            target = session.get(UserTitleDB, user_title_id)
            if target is None:
                raise ValueError(f"User title {user_title_id} not found")
            session.execute(
                update(UserTitleDB)
                .where(
                    UserTitleDB.user_id == target.user_id,
                    UserTitleDB.id != target.id,
                    UserTitleDB.active.is_(True),
                )
                .values(active=False)
            )
            target.active = True

    def init_default_network(self):
        """Initialize database with a demo network of zones, stations and titles."""
        session = self.get_session()
        try:
            existing_count = session.query(ZoneDB).count()
        finally:
            session.close()
        if existing_count:
            return

        for zone_id in range(0, 7):
            self.add_zone(zone_id)

        default_stations = [
            (1, "Catalunya", [1]),
            (2, "Passeig de Gràcia", [1]),
            (3, "Sants Estació", [1, 2]),
            (4, "Cornellà Centre", [2]),
            (5, "Sant Cugat", [3]),
            (6, "Terrassa Rambla", [4]),
            (7, "Manresa", [6]),
        ]
        for station_id, name, zone_ids in default_stations:
            self.add_station(station_id, name, zone_ids)

        self.add_title("T-casual", num_zones=1, uses=10, expiration=365, link=75, price=12.15)
        self.add_title("T-usual", num_zones=2, expiration=30, link=75, re_entry=15, price=22.80)
        self.add_title("T-dia", num_zones=3, expiration=1, re_entry=10, price=11.20)
        logger.info("Initialized demo network with %d stations and 3 titles", len(default_stations))


# Singleton instance
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get singleton database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager
