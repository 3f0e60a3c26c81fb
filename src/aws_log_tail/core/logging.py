import logging

# Configured by the CLI through setup_logging()
logger = logging.getLogger("aws_log_tail")
