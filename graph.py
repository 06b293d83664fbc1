import numpy as np
from matplotlib.backends.backend_qt5agg import FigureCanvasQTAgg as FigureCanvas
from matplotlib.figure import Figure

from kinetics import linearized


class KineticsGraph(FigureCanvas):
    """Integrated rate law plot: log((V∞ - V0) / (V∞ - Vt)) against t"""

    def __init__(self, parent=None):
        fig = Figure(figsize=(4, 3), dpi=100)
        self.axes = fig.add_subplot(111)
        super().__init__(fig)
        self.setParent(parent)
        self.setup_plot()

    def setup_plot(self):
        self.axes.set_title("Pseudo-First-Order Plot", fontsize=11, fontweight='bold')
        self.axes.set_xlabel("Time (min)", fontsize=9)
        self.axes.set_ylabel("log((V∞ - V₀) / (V∞ - Vₜ))", fontsize=9)
        self.axes.grid(True, linestyle='--', alpha=0.5)

    def update_graph(self, readings, v_infinity, rate_constant=None):
        self.axes.clear()
        self.setup_plot()
        t, y = linearized(readings, v_infinity)
        if t.size:
            self.axes.plot(t, y, linestyle='none', color='#e74c3c', marker='o',
                           markersize=5, label='Readings')
        if rate_constant is not None:
            # slope of the integrated rate law is k / 2.303
            x = np.linspace(0.0, max(t.max() if t.size else 0.0, 1.0), 50)
            self.axes.plot(x, rate_constant / 2.303 * x, color='#2980b9', linewidth=2,
                           label=f'k = {rate_constant:.4f} min⁻¹')
        if t.size or rate_constant is not None:
            self.axes.legend(fontsize=8)
        self.draw()

    def reset(self):
        self.axes.clear()
        self.setup_plot()
        self.draw()
