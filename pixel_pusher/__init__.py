from pixel_pusher.jobs.models import ErrorKind, Job, JobState
from pixel_pusher.jobs.schemas import JobParameters, PollPolicy
from pixel_pusher.services.job_controller import JobCallbacks, JobController

__all__ = [
    "__version__",
    "ErrorKind",
    "Job",
    "JobCallbacks",
    "JobController",
    "JobParameters",
    "JobState",
    "PollPolicy",
]

__version__ = "0.1.0"
