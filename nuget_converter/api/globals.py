from nuget_converter.config import settings
from nuget_converter.conversion.manager import ConversionManager
from nuget_converter.logging.event_logger import EventLogger

# Initialize globals
event_logger = EventLogger(settings.log_dir)
conversion_manager = ConversionManager(event_logger=event_logger, report_dir=settings.report_dir)
