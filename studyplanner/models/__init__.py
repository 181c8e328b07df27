from .schedule import StudySchedule, ScheduleItem
from .reminder import Reminder, ReminderLog, DispatchClaim
