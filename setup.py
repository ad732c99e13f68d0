from setuptools import setup, find_packages
import pathlib

here = pathlib.Path(__file__).parent.resolve()
long_description = (here / "README.md").read_text(encoding="utf-8")

setup(
    name="xai-toolkit",
    version="0.8.0",
    description="表格模型可解释人工智能(XAI)工具包: LIME, SHAP, IG, PDP, 置换重要性, Anchors, 反事实",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="xai, explainable ai, machine learning, interpretability, shap, lime",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9, <4",
    install_requires=[
        "numpy>=1.22.0",
        "scipy>=1.8.0",
        "pandas>=1.4.0",
        "scikit-learn>=1.3.0",
        "shap>=0.41.0",
        "lime>=0.2.0.1",
        "dice-ml>=0.8",
        "matplotlib>=3.5.0",
        "seaborn>=0.11.2",
        "PyYAML>=6.0",
        "joblib>=1.1.0",
        "tqdm>=4.62.0",
    ],
    extras_require={
        "full": ["torch>=1.12.0", "captum>=0.5.0"],
        "dev": ["pytest>=7.0.0", "coverage>=6.0.0"],
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "xai-cli=xaitoolkit.cli.__main__:main",
        ],
    },
    package_data={
        "xaitoolkit": [
            "configs/*.yaml"
        ],
    },
)
