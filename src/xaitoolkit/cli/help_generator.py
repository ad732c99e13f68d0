"""
帮助系统生成器
根据 COMMANDS 表生成命令行帮助信息
"""

import textwrap
from typing import List

from xaitoolkit.cli.command_parser import COMMANDS, GLOBAL_ARGS
from xaitoolkit.explainers.factory import list_explainers

EXAMPLES = {
    'explain': """
        # Explain the first row with SHAP
        xai-cli explain model.pkl data.csv --method shap

        # Global permutation importance, labels taken from the data file
        xai-cli explain model.pkl data.csv -m permutation_importance --label-column y
    """,
    'evaluate': """
        # Fidelity and stability of LIME on the first 20 rows
        xai-cli evaluate model.pkl data.csv -m lime --metrics fidelity stability --rows 20
    """,
    'visualize': """
        # Plot feature importance of a saved explanation
        xai-cli visualize explanation_shap.json --type feature_importance
    """
}


def _option_lines(arguments: List[tuple]) -> List[str]:
    """每个选项一行: 标志与metavar左对齐, 说明在第26列"""
    lines = []
    for flags, options in arguments:
        if not flags[0].startswith('-'):
            continue
        label = ', '.join(flags)
        if options.get('action') != 'store_true':
            label += f" {options.get('metavar', '<' + flags[-1].lstrip('-') + '>')}"
        lines.append(f"  {label.ljust(24)}{options['help']}")
    return lines


class HelpGenerator:
    """命令行帮助信息生成器"""

    @staticmethod
    def print_main_help():
        """打印主帮助信息"""
        header = """
        eXplainable AI Toolkit (XAI-Toolkit)
        ====================================

        Explanations for trained tabular models: LIME, SHAP, Integrated Gradients,
        partial dependence, permutation importance, Anchors and counterfactuals.

        Usage:
          xai-cli [global-options] <command> [command-options]
        """
        lines = [textwrap.dedent(header).strip(), "", "Global Options:"]
        lines += _option_lines(GLOBAL_ARGS)
        lines += ["", "Commands:"]
        lines += [f"  {name.ljust(12)}{entry['help']}" for name, entry in COMMANDS.items()]
        lines += ["", "Use 'xai-cli <command> --help' for command-specific help."]
        print("\n".join(lines))

    @staticmethod
    def print_command_help(command: str):
        """打印命令特定帮助信息"""
        if command not in COMMANDS:
            print(f"Unknown command: {command}")
            HelpGenerator.print_main_help()
            return

        entry = COMMANDS[command]
        title = entry['help']
        lines = [title, '=' * len(title), "", "Usage:", f"  {entry['usage']}"]

        options = _option_lines(entry['args'])
        if options:
            lines += ["", "Options:"] + options
        if command in EXAMPLES:
            lines += ["", "Examples:", textwrap.indent(textwrap.dedent(EXAMPLES[command]).strip(), "  ")]
        print("\n".join(lines))

    @staticmethod
    def format_method_table() -> str:
        """生成已注册解释方法的文本表格"""
        rows = list_explainers()
        width = max(len(row['method']) for row in rows)
        lines = [f"{'method'.ljust(width)}  scope   description",
                 f"{'-' * width}  ------  -----------"]
        for row in rows:
            lines.append(f"{row['method'].ljust(width)}  {row['scope'].ljust(6)}  {row['description']}")
        return "\n".join(lines)
