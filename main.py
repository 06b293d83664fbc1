import sys
import math
import random
import logging
from PyQt5.QtWidgets import (QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
                             QPushButton, QLabel, QLineEdit, QGroupBox, QTableWidget,
                             QTableWidgetItem, QHeaderView, QMessageBox)
from PyQt5.QtOpenGL import QGLWidget
from PyQt5.QtCore import QTimer, Qt
from OpenGL.GL import *

from graph import KineticsGraph
from kinetics import InvalidReadingError
from qtscheduler import QtScheduler
from simulation import LabSimulation, LabConfig

log = logging.getLogger(__name__)

BUTTON_STYLE = ("QPushButton { background-color: #3498db; color: white; "
                "font-size: 14px; padding: 10px; border-radius: 5px; }"
                "QPushButton:hover { background-color: #2980b9; }"
                "QPushButton:disabled { background-color: #95a5a6; }")


class Droplet:
    """A falling drop of NaOH from the burette"""
    def __init__(self, x, y):
        self.x = x
        self.y = y
        self.vy = 0
        self.radius = 0.02
        self.acceleration = -0.002

    def update(self):
        self.vy += self.acceleration
        self.y += self.vy


class FlaskView(QGLWidget):
    """Burette over a conical flask; each reading replays its titration"""
    def __init__(self):
        super().__init__()
        self.droplets = []
        self.target_ml = 0.0
        self.delivered_ml = 0.0
        self.ml_per_drop = 0.05
        self.valve_open = False
        self.end_point = False

        self.flask_bottom_y = -0.9
        self.flask_neck_y = -0.2
        self.flask_bottom_width = 0.7
        self.flask_neck_width = 0.2
        self.liquid_level = 0.15

        self.timer = QTimer(self)
        self.timer.timeout.connect(self.update_animation)
        self.timer.start(16)

    def titrate_to(self, volume_ml):
        """Start a fresh aliquot and run the burette until volume_ml is delivered"""
        self.reset_animation()
        self.target_ml = volume_ml
        # keep each replay to roughly forty drops
        self.ml_per_drop = max(volume_ml / 40.0, 0.05)
        self.valve_open = volume_ml > 0
        self.end_point = not self.valve_open

    def reset_animation(self):
        self.droplets.clear()
        self.target_ml = 0.0
        self.delivered_ml = 0.0
        self.valve_open = False
        self.end_point = False
        self.liquid_level = 0.15

    def initializeGL(self):
        glClearColor(0.96, 0.96, 0.98, 1.0)
        glEnable(GL_BLEND)
        glBlendFunc(GL_SRC_ALPHA, GL_ONE_MINUS_SRC_ALPHA)
        glEnable(GL_LINE_SMOOTH)
        glHint(GL_LINE_SMOOTH_HINT, GL_NICEST)

    def resizeGL(self, w, h):
        glViewport(0, 0, w, max(h, 1))
        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        aspect = w / max(h, 1)
        glOrtho(-aspect, aspect, -1, 1, -1, 1)
        glMatrixMode(GL_MODELVIEW)

    def get_flask_width_at_height(self, y):
        """Half width of the flask at height y"""
        if y <= self.flask_bottom_y:
            return self.flask_bottom_width / 2
        if y >= self.flask_neck_y:
            return self.flask_neck_width / 2
        t = (y - self.flask_bottom_y) / (self.flask_neck_y - self.flask_bottom_y)
        return (self.flask_bottom_width + t * (self.flask_neck_width - self.flask_bottom_width)) / 2

    def update_animation(self):
        if self.valve_open and random.random() < 0.3:
            self.droplets.append(Droplet(0.0, 0.25))

        surface_y = self.flask_bottom_y + self.liquid_level
        for drop in self.droplets[:]:
            drop.update()
            if drop.y < surface_y:
                self.droplets.remove(drop)
                if self.end_point:
                    continue
                self.delivered_ml = min(self.delivered_ml + self.ml_per_drop, self.target_ml)
                self.liquid_level = min(self.liquid_level + 0.004, 0.55)
                if self.delivered_ml >= self.target_ml:
                    self.end_point = True
                    self.valve_open = False
        self.update()

    def get_solution_color(self):
        """Phenolphthalein: colourless until the end point, then faint pink"""
        if self.end_point:
            return (1.0, 0.75, 0.85, 0.8)
        return (0.85, 0.92, 1.0, 0.6)

    def paintGL(self):
        glClear(GL_COLOR_BUFFER_BIT)
        glLoadIdentity()

        # Burette
        glColor4f(0.8, 0.85, 0.9, 0.7)
        glBegin(GL_QUADS)
        glVertex2f(-0.05, 0.3)
        glVertex2f(0.05, 0.3)
        glVertex2f(0.05, 0.95)
        glVertex2f(-0.05, 0.95)
        glEnd()
        glColor4f(0.3, 0.3, 0.35, 1.0)
        glBegin(GL_QUADS)
        glVertex2f(-0.012, 0.25)
        glVertex2f(0.012, 0.25)
        glVertex2f(0.012, 0.3)
        glVertex2f(-0.012, 0.3)
        glEnd()

        # Liquid
        r, g, b, a = self.get_solution_color()
        top = self.flask_bottom_y + self.liquid_level
        glColor4f(r, g, b, a)
        glBegin(GL_QUADS)
        glVertex2f(-self.flask_bottom_width / 2, self.flask_bottom_y)
        glVertex2f(self.flask_bottom_width / 2, self.flask_bottom_y)
        glVertex2f(self.get_flask_width_at_height(top), top)
        glVertex2f(-self.get_flask_width_at_height(top), top)
        glEnd()

        # Flask outline
        glColor4f(0.2, 0.25, 0.3, 1.0)
        glLineWidth(2.0)
        glBegin(GL_LINE_STRIP)
        glVertex2f(-self.flask_neck_width / 2, 0.1)
        glVertex2f(-self.flask_neck_width / 2, self.flask_neck_y)
        glVertex2f(-self.flask_bottom_width / 2, self.flask_bottom_y)
        glVertex2f(self.flask_bottom_width / 2, self.flask_bottom_y)
        glVertex2f(self.flask_neck_width / 2, self.flask_neck_y)
        glVertex2f(self.flask_neck_width / 2, 0.1)
        glEnd()

        # Droplets
        glColor4f(0.7, 0.8, 1.0, 0.9)
        for drop in self.droplets:
            glBegin(GL_TRIANGLE_FAN)
            glVertex2f(drop.x, drop.y)
            for i in range(13):
                angle = 2 * math.pi * i / 12
                glVertex2f(drop.x + drop.radius * math.cos(angle),
                           drop.y + drop.radius * math.sin(angle))
            glEnd()


class ControlPanel(QWidget):
    """Instruction box, lab controls and the reading log"""
    def __init__(self, flask, graph):
        super().__init__()
        self.flask = flask
        self.graph = graph
        self.session = None
        self.init_ui()

    def init_ui(self):
        layout = QVBoxLayout()

        title = QLabel("Ester Hydrolysis Virtual Lab")
        title.setStyleSheet("font-weight: bold; font-size: 20px; color: #2c3e50; padding: 10px;")
        layout.addWidget(title)

        # Instructions
        self.lbl_instruction = QLabel("")
        self.lbl_instruction.setTextFormat(Qt.RichText)
        self.lbl_instruction.setWordWrap(True)
        self.lbl_instruction.setStyleSheet(
            "font-size: 13px; color: #2c3e50; background-color: #f8f9fa; "
            "padding: 10px; border-radius: 6px; border: 1px solid #dcdde1;"
        )
        layout.addWidget(self.lbl_instruction)

        self.btn_next = QPushButton("Begin Simulation")
        self.btn_next.setStyleSheet(BUTTON_STYLE)
        self.btn_next.clicked.connect(lambda: self.session.advance())
        layout.addWidget(self.btn_next)

        # Experiment setup
        self.setup_group = QGroupBox("Experiment Setup")
        setup_layout = QVBoxLayout()
        self.btn_start = QPushButton("Start Reaction")
        self.btn_start.setStyleSheet(BUTTON_STYLE)
        self.btn_start.clicked.connect(lambda: self.session.start_reaction())
        setup_layout.addWidget(self.btn_start)

        self.lbl_stopwatch = QLabel("00:00:00")
        self.lbl_stopwatch.setAlignment(Qt.AlignCenter)
        self.lbl_stopwatch.setStyleSheet("font-size: 24px; font-weight: bold; color: #e74c3c; "
                                         "background-color: #ecf0f1; padding: 10px; border-radius: 8px;")
        setup_layout.addWidget(self.lbl_stopwatch)
        self.setup_group.setLayout(setup_layout)
        layout.addWidget(self.setup_group)

        # Readings
        reading_row = QHBoxLayout()
        self.btn_take = QPushButton("Take Reading")
        self.btn_take.clicked.connect(lambda: self.session.request_reading())
        self.input_reading = QLineEdit()
        self.input_reading.returnPressed.connect(self.submit_reading)
        self.btn_submit = QPushButton("Submit Reading")
        self.btn_submit.clicked.connect(self.submit_reading)
        reading_row.addWidget(self.btn_take)
        reading_row.addWidget(self.input_reading)
        reading_row.addWidget(self.btn_submit)
        layout.addLayout(reading_row)

        self.btn_simulate = QPushButton("Simulate All Readings")
        self.btn_simulate.setStyleSheet("padding: 8px; font-size: 12px;")
        self.btn_simulate.clicked.connect(lambda: self.session.simulate_readings())
        layout.addWidget(self.btn_simulate)

        self.table = QTableWidget(0, 2)
        self.table.setHorizontalHeaderLabels(["Time (min)", "Burette Reading (mL)"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QTableWidget.NoEditTriggers)
        layout.addWidget(self.table)

        # Analysis
        self.btn_analyze = QPushButton("Analyze Data")
        self.btn_analyze.setStyleSheet(BUTTON_STYLE)
        self.btn_analyze.clicked.connect(lambda: self.session.analyze())
        layout.addWidget(self.btn_analyze)

        self.results_group = QGroupBox("Results")
        results_layout = QVBoxLayout()
        self.lbl_result = QLabel("")
        self.lbl_result.setWordWrap(True)
        self.lbl_result.setStyleSheet("font-size: 16px; font-weight: bold; color: #27ae60; padding: 6px;")
        results_layout.addWidget(self.lbl_result)
        self.results_group.setLayout(results_layout)
        layout.addWidget(self.results_group)

        self.btn_reset = QPushButton("Reset Experiment")
        self.btn_reset.setStyleSheet("QPushButton { background-color: #e67e22; color: white; "
                                     "padding: 10px; border-radius: 5px; }"
                                     "QPushButton:hover { background-color: #d35400; }")
        layout.addWidget(self.btn_reset)

        layout.addStretch()
        self.setLayout(layout)

    def bind(self, session):
        if self.session is not None:
            self.session.unsubscribe(self.apply)
        self.session = session
        self.table.setRowCount(0)
        self.input_reading.clear()
        self.flask.reset_animation()
        self.graph.reset()
        session.subscribe(self.apply)
        self.apply(session.ui)

    def submit_reading(self):
        try:
            self.session.submit_reading(self.input_reading.text())
        except InvalidReadingError as exc:
            log.info("Rejected reading: %s", exc)
            QMessageBox.warning(self, "Invalid Reading", "Please enter a valid positive burette reading.")

    @staticmethod
    def _set(widget, control):
        if widget.isVisibleTo(widget.parentWidget()) != control.visible:
            widget.setVisible(control.visible)
        if widget.isEnabled() != control.enabled:
            widget.setEnabled(control.enabled)

    def apply(self, state):
        """Bring the widgets in line with a UIState"""
        if self.lbl_instruction.text() != state.instruction:
            self.lbl_instruction.setText(state.instruction)
        self.btn_next.setText(state.advance_label)
        self.lbl_stopwatch.setText(state.stopwatch)

        self._set(self.btn_next, state.advance)
        self._set(self.setup_group, state.setup)
        self._set(self.btn_start, state.start)
        self._set(self.btn_take, state.request)
        self._set(self.input_reading, state.input)
        self._set(self.btn_submit, state.submit)
        self._set(self.btn_simulate, state.simulate)
        self._set(self.table, state.table)
        self._set(self.btn_analyze, state.analyze)

        if self.input_reading.placeholderText() != state.input_placeholder:
            self.input_reading.clear()
            self.input_reading.setPlaceholderText(state.input_placeholder)

        shown = self.table.rowCount()
        for reading in state.rows[shown:]:
            row = self.table.rowCount()
            self.table.insertRow(row)
            self.table.setItem(row, 0, QTableWidgetItem(f"{reading.time:g}"))
            self.table.setItem(row, 1, QTableWidgetItem(f"{reading.volume:g}"))
        if len(state.rows) > shown:
            self.flask.titrate_to(state.rows[-1].volume)

        if state.results.visible and not self.results_group.isVisibleTo(self):
            result = self.session.result
            self.lbl_result.setText(state.result_text)
            self.graph.update_graph(state.rows, self.session.config.v_infinity, result.rate_constant)
        self._set(self.results_group, state.results)
        self._set(self.graph, state.results)


class MainWindow(QMainWindow):
    def __init__(self, config=None):
        super().__init__()
        self.setWindowTitle("Ester Hydrolysis Virtual Lab")
        self.resize(1400, 850)
        self.setMinimumSize(1100, 650)
        self.config = config or LabConfig()
        self.session = None

        container = QWidget()
        main_layout = QHBoxLayout(container)

        self.graph = KineticsGraph()
        self.flask = FlaskView()
        self.controls = ControlPanel(self.flask, self.graph)
        self.controls.btn_reset.clicked.connect(self.reset_experiment)

        right = QVBoxLayout()
        right.addWidget(self.flask, 3)
        right.addWidget(self.graph, 2)

        main_layout.addWidget(self.controls, 2)
        main_layout.addLayout(right, 3)
        self.setCentralWidget(container)

        self.reset_experiment()

    def reset_experiment(self):
        if self.session is not None:
            self.session.close()
        self.session = LabSimulation(self.config, QtScheduler(self))
        self.controls.bind(self.session)
        log.info("New lab session")

    def closeEvent(self, event):
        if self.session is not None:
            self.session.close()
        super().closeEvent(event)


def run():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    run()
