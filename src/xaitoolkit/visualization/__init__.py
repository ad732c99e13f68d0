from .plot_generator import PlotGenerator, PLOT_TYPES

__all__ = ['PlotGenerator', 'PLOT_TYPES']
