"""
CLI入口点
提供命令行接口的主程序
"""

import os
import sys
import logging
from typing import Any, Dict, List, Optional

from xaitoolkit.cli.command_parser import CommandParser
from xaitoolkit.cli.help_generator import HelpGenerator

# 配置与日志
from xaitoolkit.xai_io.config_parser import ConfigParser
from xaitoolkit.utils.logging import configure_logging, log_execution

# 核心模型与解释器
from xaitoolkit.core.explainer import ExplanationResult, display_explanation_result
from xaitoolkit.core.model_loader import ModelLoader
from xaitoolkit.explainers.factory import EXPLAINER_REGISTRY, get_explainer, resolve_method

# 数据与IO
from xaitoolkit.xai_io.data_loader import DataLoader
from xaitoolkit.xai_io.result_writer import ResultWriter

# 评估与可视化
from xaitoolkit.evaluation.fidelity import FidelityEvaluator
from xaitoolkit.evaluation.stability import StabilityEvaluator
from xaitoolkit.visualization.plot_generator import PlotGenerator

logger = logging.getLogger('xaitoolkit.cli')

# 需要训练数据的解释器及其参数名
TRAINING_DATA_ARGS = {
    'lime': 'training_data',
    'anchor': 'training_data',
    'integrated_gradients': 'training_data',
    'counterfactual': 'training_data',
    'shap': 'background_data'
}


def main(argv: Optional[List[str]] = None):
    """主入口函数"""
    parser = CommandParser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        config = ConfigParser(args.config).to_dict()

        # 命令行参数优先于配置文件
        configure_logging(config.get('logging'), level=args.log_level, log_file=args.log_file)
        if args.config:
            logger.info(f"Loaded configuration from {args.config}")

        output_dir = args.output_dir or (config.get('output') or {}).get('dir') or '.'

        if args.command == 'explain':
            _handle_explain_command(args, config, output_dir)
        elif args.command == 'evaluate':
            _handle_evaluate_command(args, config, output_dir)
        elif args.command == 'visualize':
            _handle_visualize_command(args, output_dir)
        elif args.command == 'list':
            print(HelpGenerator.format_method_table())
        else:
            HelpGenerator.print_main_help()

    except Exception as e:
        logger.error(f"Error: {str(e)}")
        sys.exit(1)


def _output_path(explicit: Optional[str], output_dir: str, default_name: str) -> str:
    if explicit:
        return explicit
    return os.path.join(output_dir, default_name)


def _parse_target(target: Optional[float], task_type: str) -> Optional[Any]:
    if target is None:
        return None
    return int(target) if task_type == 'classification' else float(target)


def _load_inputs(args) -> Dict[str, Any]:
    """加载模型、待解释数据以及训练数据"""
    model = ModelLoader.load(args.model_path)
    info = ModelLoader.inspect(model)

    data, labels = DataLoader.load_table(args.data_path, label_column=args.label_column)
    logger.info(f"Loaded data from {args.data_path}: {data.shape[0]} rows")

    if info['n_features'] is not None and info['n_features'] != data.shape[1]:
        raise ValueError(f"模型 {info['name']} 需要 {info['n_features']} 个特征, "
                         f"数据有 {data.shape[1]} 列 (标签列是否已用 --label-column 指定?)")
    if info['task_type'] != args.task_type:
        logger.warning(f"模型 {info['name']} 看起来是 {info['task_type']} 模型, "
                       f"但 --task-type 为 {args.task_type}")

    if args.training_data:
        training, training_labels = DataLoader.load_table(args.training_data,
                                                          label_column=args.label_column)
    else:
        training, training_labels = data, labels

    if args.feature_names:
        if len(args.feature_names) != data.shape[1]:
            raise ValueError(f"给出了 {len(args.feature_names)} 个特征名, 数据有 {data.shape[1]} 列")
        data.columns = args.feature_names
        training.columns = args.feature_names

    return {
        'model': model,
        'data': data,
        'labels': labels,
        'training': training,
        'training_labels': training_labels
    }


def _build_explainer(method: str, inputs: Dict[str, Any], task_type: str, config: Dict[str, Any]):
    """按方法需要把训练数据传给解释器"""
    kwargs = {}
    data_arg = TRAINING_DATA_ARGS.get(method)
    if data_arg is not None:
        kwargs[data_arg] = inputs['training']
    if method == 'counterfactual' and inputs['training_labels'] is not None:
        kwargs['training_labels'] = inputs['training_labels']

    explainer = get_explainer(
        model=inputs['model'],
        method=method,
        task_type=task_type,
        feature_names=[str(c) for c in inputs['data'].columns],
        config=config,
        **kwargs
    )
    logger.info(f"Created {method} explainer ({type(explainer).__name__})")
    return explainer


@log_execution(logger)
def _handle_explain_command(args, config, output_dir):
    """处理解释命令"""
    method = resolve_method(args.method)
    inputs = _load_inputs(args)
    explainer = _build_explainer(method, inputs, args.task_type, config)
    data = inputs['data']
    target = _parse_target(args.target, args.task_type)

    if explainer.scope == 'global':
        if method == 'permutation_importance':
            if inputs['labels'] is None:
                raise ValueError("permutation_importance 需要 --label-column 提供标签")
            results = explainer.explain(data, target=inputs['labels'].values)
        else:
            results = explainer.explain(data, target=target)
    elif args.batch:
        targets = [target] * len(data) if target is not None else None
        results = explainer.batch_explain(data, targets=targets)
    else:
        if not 0 <= args.row < len(data):
            raise ValueError(f"--row 超出范围: {args.row} (共 {len(data)} 行)")
        results = explainer.explain(data.iloc[[args.row]], target=target)

    if isinstance(results, list):
        for i, res in enumerate(results):
            print(f"\n=== 第{i + 1}个解释结果 ===")
            display_explanation_result(res)
    else:
        display_explanation_result(results)

    # 保存结果
    output_path = _output_path(args.output, output_dir, f"explanation_{method}.json")
    ResultWriter.write(results, output_path)
    logger.info(f"Saved explanation to {output_path}",
                extra={'command': 'explain', 'method': method})
    return results


@log_execution(logger)
def _handle_evaluate_command(args, config, output_dir):
    """处理评估命令"""
    method = resolve_method(args.method)
    if EXPLAINER_REGISTRY[method].scope == 'global':
        raise ValueError(f"只能评估局部解释方法, {method} 是全局方法")

    eval_config = config.get('evaluation') or {}
    metrics = args.metrics or eval_config.get('metrics') or ['fidelity']

    inputs = _load_inputs(args)
    explainer = _build_explainer(method, inputs, args.task_type, config)

    rows = inputs['data'].iloc[:max(1, args.rows)]
    explanations = explainer.batch_explain(rows)
    importances = [e.feature_importance for e in explanations]
    sample = rows.values.astype(float)
    reference = inputs['training'].values.astype(float)

    eval_results = {'method': method, 'num_rows': len(sample)}
    if 'fidelity' in metrics:
        eval_results['fidelity'] = FidelityEvaluator.evaluate_all(
            inputs['model'], sample, importances,
            feature_names=explainer.feature_names,
            task_type=args.task_type,
            reference_data=reference,
            top_k=eval_config.get('top_k', 3)
        )

    if 'stability' in metrics:
        eval_results['stability'] = StabilityEvaluator.evaluate_all(
            explainer, sample, importances,
            targets=[e.metadata.get('target_class') for e in explanations],
            num_perturbations=eval_config.get('num_perturbations', 5),
            noise_scale=eval_config.get('noise_scale', 0.05),
            reference_data=reference,
            top_k=eval_config.get('top_k', 3)
        )

    for name, scores in eval_results.items():
        if isinstance(scores, dict):
            for key, value in scores.items():
                print(f"{name}.{key}: {value:.4f}")

    output_path = _output_path(args.output, output_dir, f"evaluation_{method}.json")
    ResultWriter.write(eval_results, output_path)
    logger.info(f"Saved evaluation results to {output_path}",
                extra={'command': 'evaluate', 'method': method, 'rows': len(sample)})
    return eval_results


@log_execution(logger)
def _handle_visualize_command(args, output_dir):
    """处理可视化命令"""
    loaded = DataLoader.load(args.explanation_path)
    if isinstance(loaded, ExplanationResult):
        explanation = loaded
    else:
        if isinstance(loaded, list):
            if not loaded:
                raise ValueError(f"解释文件为空: {args.explanation_path}")
            if len(loaded) > 1:
                logger.warning(f"解释文件包含 {len(loaded)} 个结果, 只绘制第一个")
            loaded = loaded[0]
        explanation = ExplanationResult.from_dict(loaded)
    logger.info(f"Loaded explanation from {args.explanation_path}")

    plot_type = args.type or PlotGenerator.infer_plot_type(explanation)
    plot_kwargs = {}
    if plot_type == 'feature_importance':
        if args.title:
            plot_kwargs['title'] = args.title
        if args.top_n:
            plot_kwargs['top_n'] = args.top_n

    generator = PlotGenerator()
    fig = generator.plot(explanation, plot_type, **plot_kwargs)
    if args.title and 'title' not in plot_kwargs:
        fig.suptitle(args.title)

    output_path = _output_path(args.output, output_dir, f"visualization_{plot_type}.png")
    ResultWriter.write(fig, output_path)
    logger.info(f"Saved visualization to {output_path}")
    return output_path


if __name__ == "__main__":
    main()
