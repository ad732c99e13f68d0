from .data_loader import DataLoader
from .result_writer import ResultWriter, to_frame, to_records
from .config_parser import ConfigParser, deep_merge

__all__ = ['DataLoader', 'ResultWriter', 'ConfigParser', 'deep_merge', 'to_frame', 'to_records']
