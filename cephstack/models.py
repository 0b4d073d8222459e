from sqlalchemy import Column, Integer, String, Enum, DateTime, Text
from sqlalchemy.orm import declarative_base
from datetime import datetime
import enum

Base = declarative_base()

# ============================================================================
# ENUM DEFINITIONS
# ============================================================================

class LifecyclePhase(str, enum.Enum):
    """Deployment lifecycle state"""
    UNINSTALLED = "Uninstalled"
    INSTALLED = "Installed"
    CONFIGURED = "Configured"
    INITIALIZED = "Initialized"
    RUNNING = "Running"
    STOPPED = "Stopped"
    CLEANED_UP = "CleanedUp"

class Consumer(str, enum.Enum):
    """Storage-consuming service"""
    IMAGE_STORE = "image-store"
    COMPUTE = "compute"
    BLOCK_STORE = "block-store"
    BLOCK_BACKUP = "block-store-backup"
    SHARED_FS = "shared-filesystem"
    OBJECT_GATEWAY = "object-gateway"

class ClusterTopology(str, enum.Enum):
    """Where the cluster (or gateway) lives"""
    EMBEDDED = "embedded"
    REMOTE = "remote"

class OSFamily(str, enum.Enum):
    """Host operating system family"""
    DEBIAN = "debian"
    REDHAT = "redhat"
    SUSE = "suse"
    UNKNOWN = "unknown"

class Supervisor(str, enum.Enum):
    """Process supervisor used to start cluster daemons"""
    UPSTART = "upstart"
    SYSVINIT = "sysvinit"

class VersionBucket(str, enum.Enum):
    """Cluster release range relevant to command sequences"""
    PRE_GIANT = "pre-giant"
    GIANT = "giant"
    INFERNALIS_PLUS = "infernalis+"


# Consumers are always provisioned in this order; block-store precedes compute
# so a shared identity exists before compute looks for it.
PROVISION_ORDER = (
    Consumer.IMAGE_STORE,
    Consumer.BLOCK_STORE,
    Consumer.BLOCK_BACKUP,
    Consumer.COMPUTE,
    Consumer.SHARED_FS,
    Consumer.OBJECT_GATEWAY,
)

# ============================================================================
# PERSISTED RUN STATE
# ============================================================================

class RunRecord(Base):
    """One deployment lifecycle; the serialized run context is the payload"""
    __tablename__ = "run_records"
    
    id = Column(Integer, primary_key=True)
    fsid = Column(String, unique=True, nullable=False)
    phase = Column(Enum(LifecyclePhase), nullable=False, default=LifecyclePhase.UNINSTALLED)
    context_json = Column(Text, nullable=False)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
