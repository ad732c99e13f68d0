"""
日志系统
xaitoolkit 包根记录器的处理器配置, 以及命令执行计时和日志文件回读
"""

import functools
import json
import logging
import logging.handlers
import os
import re
import sys
import time
from typing import Any, Dict, List, Optional, Union

PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# 通过 extra= 传入时写入JSON日志的字段
CONTEXT_FIELDS = ('method', 'command', 'rows', 'duration')

# 与 PLAIN_FORMAT 对应
_PLAIN_LINE = re.compile(r'^(\S+ \S+) - (\S+) - (\w+) - (.*)$')


class ColoredFormatter(logging.Formatter):
    """终端输出时按级别给级别名着色"""

    LEVEL_COLORS = {
        'DEBUG': '\033[94m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[95m'
    }
    RESET = '\033[0m'

    def __init__(self, fmt=PLAIN_FORMAT, datefmt=DATE_FORMAT, use_color: bool = True):
        super().__init__(fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname)
        if self.use_color and color:
            # 复制记录, 避免颜色码进入其他处理器
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """每条记录一行JSON"""

    def format(self, record):
        entry = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            'name': record.name,
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'lineno': record.lineno
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _parse_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"未知的日志级别: {level}")
    return value


def setup_logger(name: str = 'xaitoolkit',
                 level: Union[int, str] = logging.INFO,
                 log_file: Optional[str] = None,
                 console: bool = True,
                 json_format: bool = False) -> logging.Logger:
    """
    配置日志记录器的处理器

    默认配置包的根记录器, 各模块用 logging.getLogger(__name__) 得到的子记录器
    都会使用这里的处理器。重复调用会替换而不是叠加处理器。

    参数:
    name: 日志记录器名称
    level: 日志级别, 整数或 'debug'/'INFO' 这样的名称
    log_file: 日志文件路径 (轮转, 10MB x 5)
    console: 是否输出到 stderr
    json_format: 是否使用JSON格式

    返回:
    配置好的日志记录器
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(
            JSONFormatter() if json_format else ColoredFormatter(use_color=sys.stderr.isatty())
        )
        logger.addHandler(stream_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8'
        )
        file_handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT)
        )
        logger.addHandler(file_handler)

    return logger


def configure_logging(log_config: Optional[Dict[str, Any]] = None,
                      level: Optional[str] = None,
                      log_file: Optional[str] = None) -> logging.Logger:
    """
    按配置文件的 logging 段配置包日志, 显式参数 (命令行) 优先

    参数:
    log_config: {'level': ..., 'file': ..., 'json_format': ...}
    level: 覆盖配置中的级别
    log_file: 覆盖配置中的文件
    """
    log_config = log_config or {}
    return setup_logger(level=level or log_config.get('level') or 'INFO',
                        log_file=log_file or log_config.get('file'),
                        json_format=bool(log_config.get('json_format', False)))


def log_execution(logger: logging.Logger, level: int = logging.INFO):
    """
    记录函数开始, 结束和耗时的装饰器, 异常记录后继续抛出

    参数:
    logger: 日志记录器
    level: 开始和结束消息的级别
    """

    def decorator(func):
        qualified = f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.log(level, f"Executing {qualified}")
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in {qualified}: {str(e)}", exc_info=True,
                             extra={'duration': time.perf_counter() - start})
                raise
            duration = time.perf_counter() - start
            logger.log(level, f"Completed {qualified} in {duration:.3f}s", extra={'duration': duration})
            return result

        return wrapper

    return decorator


def _parse_line(line: str) -> Optional[Dict[str, Any]]:
    if line.startswith('{'):
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            return None
    match = _PLAIN_LINE.match(line)
    if match:
        return dict(zip(('timestamp', 'name', 'level', 'message'), match.groups()))
    return None


def log_to_dict(log_file: str) -> List[Dict[str, Any]]:
    """
    读回日志文件

    JSON行原样解析, 纯文本行按 PLAIN_FORMAT 拆成 timestamp/name/level/message,
    无法识别的行 (例如异常堆栈) 被跳过

    参数:
    log_file: 日志文件路径

    返回:
    日志记录字典列表
    """
    with open(log_file, 'r', encoding='utf-8') as f:
        parsed = [_parse_line(line.rstrip('\n')) for line in f]
    return [record for record in parsed if record is not None]
