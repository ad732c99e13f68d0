"""
命令解析器
子命令和参数定义在 COMMANDS 表中, 帮助信息也由同一张表生成
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from xaitoolkit.explainers.factory import EXPLAINER_REGISTRY, METHOD_ALIASES
from xaitoolkit.visualization.plot_generator import PLOT_TYPES

METHOD_CHOICES = sorted(list(EXPLAINER_REGISTRY) + list(METHOD_ALIASES))

HELP_FLAG = (('-h', '--help'), {'action': 'store_true', 'help': 'Show this help message and exit'})

GLOBAL_ARGS = [
    (('--config',), {'metavar': '<file>', 'help': 'Path to configuration file (merged onto the defaults)'}),
    (('--log-level',), {'choices': ['debug', 'info', 'warning', 'error'], 'metavar': '<level>',
                        'help': 'Logging level, overrides the config file (debug, info, warning, error)'}),
    (('--log-file',), {'metavar': '<file>', 'help': 'Path to log file'}),
    (('--output-dir',), {'metavar': '<dir>', 'help': 'Output directory for results'}),
    HELP_FLAG
]

# explain 和 evaluate 共用
MODEL_DATA_ARGS = [
    (('model_path',), {'nargs': '?', 'help': 'Path to the model file'}),
    (('data_path',), {'nargs': '?', 'help': 'Path to the input data'}),
    (('-m', '--method'), {'choices': METHOD_CHOICES, 'metavar': '<method>',
                          'help': "Explanation method (see 'xai-cli list')"}),
    (('-t', '--task-type'), {'choices': ['classification', 'regression'], 'default': 'classification',
                             'metavar': '<type>',
                             'help': 'Task type (classification, regression) [default: classification]'}),
    (('--label-column',), {'metavar': '<name>', 'help': 'Column holding the labels (dropped from the features)'}),
    (('--training-data',), {'metavar': '<file>', 'help': 'Training data [default: the input data]'}),
    (('--feature-names',), {'nargs': '+', 'metavar': '<name>', 'help': 'List of feature names'})
]

COMMANDS: Dict[str, Dict[str, Any]] = {
    'explain': {
        'help': 'Generate model explanations',
        'usage': 'xai-cli explain [options] <model_path> <data_path>',
        'required': ['model_path', 'data_path', 'method'],
        'args': MODEL_DATA_ARGS + [
            (('--target',), {'type': float, 'metavar': '<value>',
                             'help': 'Target class, or desired value for regression counterfactuals'}),
            (('--row',), {'type': int, 'default': 0, 'metavar': '<index>', 'help': 'Row to explain [default: 0]'}),
            (('--batch',), {'action': 'store_true', 'help': 'Explain every row'}),
            (('-o', '--output'), {'metavar': '<file>', 'help': 'Output file path (json, csv, html, pkl)'})
        ]
    },
    'evaluate': {
        'help': 'Evaluate explanation quality',
        'usage': 'xai-cli evaluate [options] <model_path> <data_path>',
        'required': ['model_path', 'data_path', 'method'],
        'args': MODEL_DATA_ARGS + [
            (('--metrics',), {'nargs': '+', 'choices': ['fidelity', 'stability'], 'metavar': '<metric>',
                              'help': 'Evaluation metrics (fidelity, stability) [default: from config]'}),
            (('--rows',), {'type': int, 'default': 10, 'metavar': '<n>',
                           'help': 'Number of rows to explain [default: 10]'}),
            (('-o', '--output'), {'metavar': '<file>', 'help': 'Output file path for evaluation results'})
        ]
    },
    'visualize': {
        'help': 'Generate visualizations from explanations',
        'usage': 'xai-cli visualize [options] <explanation_path>',
        'required': ['explanation_path'],
        'args': [
            (('explanation_path',), {'nargs': '?', 'help': 'Explanation JSON written by explain'}),
            (('-t', '--type'), {'choices': PLOT_TYPES, 'metavar': '<type>',
                                'help': f"Visualization type ({', '.join(PLOT_TYPES)}) [default: inferred]"}),
            (('--title',), {'metavar': '<title>', 'help': 'Title for the visualization'}),
            (('--top-n',), {'type': int, 'metavar': '<n>', 'help': 'Only plot the n most important features'}),
            (('-o', '--output'), {'metavar': '<file>', 'help': 'Output file path (png, svg, pdf)'})
        ]
    },
    'list': {
        'help': 'List available explanation methods',
        'usage': 'xai-cli list',
        'required': [],
        'args': []
    }
}


class CommandParser:
    """命令行参数解析器"""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """按 GLOBAL_ARGS 和 COMMANDS 构建解析器, -h 由 HelpGenerator 处理"""
        parser = argparse.ArgumentParser(
            prog='xai-cli',
            description='eXplainable AI Toolkit Command Line Interface',
            add_help=False
        )
        self._add_arguments(parser.add_argument_group('Global Options'), GLOBAL_ARGS)

        subparsers = parser.add_subparsers(title='Commands', dest='command', metavar='<command>')
        for name, entry in COMMANDS.items():
            sub = subparsers.add_parser(name, help=entry['help'], add_help=False)
            self._add_arguments(sub, entry['args'] + [HELP_FLAG])

        return parser

    @staticmethod
    def _add_arguments(parser, arguments: List[tuple]):
        for flags, options in arguments:
            parser.add_argument(*flags, **options)

    def parse_args(self, args: Optional[List[str]] = None) -> Any:
        """解析命令行参数, 没有子命令或带 -h 时打印帮助并退出"""
        parsed = self.parser.parse_args(args)

        if parsed.command is None or parsed.help:
            from xaitoolkit.cli.help_generator import HelpGenerator
            if parsed.command:
                HelpGenerator.print_command_help(parsed.command)
            else:
                HelpGenerator.print_main_help()
            sys.exit(0)

        # -h 可以单独使用, 所以必需参数在这里检查
        missing = [name for name in COMMANDS[parsed.command]['required'] if getattr(parsed, name) is None]
        if missing:
            self.parser.error(f"{parsed.command}: missing required arguments: "
                              + ", ".join(name.replace('_', '-') for name in missing))
        return parsed
