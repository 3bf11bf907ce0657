from sitelog.db.base_class import Base

# Import models so create_all finds every table
from sitelog.db.models.user import User
from sitelog.db.models.project import Project, Constructor
from sitelog.db.models.log import DailyLog, LogTask, CrewEntry, Photo
from sitelog.db.models.activity import ActivityLog
