import customtkinter as ctk
import threading
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg
from matplotlib.figure import Figure
import os
import sys
from tkinter import messagebox

# Add parent directory to path for imports when running directly
if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import sg_commands
from sg_devices import list_devices, select_device, port_names_changed
from sg_dispatcher import CommandDispatcher, format_transcript_line
from sg_metrics import SgControlError, dbm_to_watt, watt_to_dbm
from sg_properties import PORT_POLL_INTERVAL
from sg_reader import ResponseStatus
from sg_sweep import PlotNotation, SweepError, plot_series, run_sweep
from sg_transport import SerialTransport


class SignalGeneratorGUI:
    def __init__(self):
        # Main window
        self.root = ctk.CTk()
        self.root.title("Signal Generator Control")
        self.root.geometry("1400x900")
        self.root.minsize(1100, 650)

        # Connection
        self.transport = SerialTransport()
        self.dispatcher = CommandDispatcher(self.transport, log_sink=self.on_transcript)
        self.port_list = []  # DeviceInfo list shown in the port menu

        # Sweep data
        self.sweep_result = None
        self.notation = PlotNotation.LOGARITHMIC

        # Exchanges run on a worker thread; tests switch this off to run inline
        self.run_in_background = True
        self._port_poll_job = None

        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.setup_ui_structure()
        self.update_port_list()
        self.show_connection_buttons(True)
        self.show_main_buttons(False)

    def setup_ui_structure(self):
        """Setup the user interface"""
        self.root.grid_columnconfigure(0, weight=0, minsize=420)
        self.root.grid_columnconfigure(1, weight=1)
        self.root.grid_rowconfigure(0, weight=1)

        # Left panel - connection, commands and log
        self.left_panel = ctk.CTkFrame(self.root, width=420)
        self.left_panel.grid(row=0, column=0, padx=10, pady=10, sticky="nsew")
        self.left_panel.grid_propagate(False)

        # Right panel - sweep
        self.right_panel = ctk.CTkFrame(self.root)
        self.right_panel.grid(row=0, column=1, padx=(0, 10), pady=10, sticky="nsew")

        self.create_control_panel()
        self.create_sweep_panel()

    def create_control_panel(self):
        """Create connection controls, command buttons and the message log"""
        title = ctk.CTkLabel(self.left_panel, text="Signal Generator", font=("Roboto", 24, "bold"))
        title.pack(pady=(20, 10))

        # Serial port management
        conn_frame = ctk.CTkFrame(self.left_panel)
        conn_frame.pack(pady=10, padx=20, fill="x")

        ctk.CTkLabel(conn_frame, text="Connection", font=("Roboto", 14, "bold")).pack(pady=(10, 5))

        self.port_menu = ctk.CTkComboBox(conn_frame, values=[], command=self.on_port_selected)
        self.port_menu.set("")
        self.port_menu.pack(padx=10, pady=(0, 5), fill="x")

        button_row = ctk.CTkFrame(conn_frame, fg_color="transparent")
        button_row.pack(padx=10, pady=(0, 10), fill="x")
        self.connect_button = ctk.CTkButton(button_row, text="Connect", width=100, command=self.connect)
        self.connect_button.pack(side="left", expand=True, padx=2)
        self.autoconnect_button = ctk.CTkButton(button_row, text="Auto-connect", width=100,
                                                command=self.autoconnect)
        self.autoconnect_button.pack(side="left", expand=True, padx=2)
        self.disconnect_button = ctk.CTkButton(button_row, text="Disconnect", width=100,
                                               fg_color=("#AE0006", "#B80006"), hover_color="#4E0003",
                                               command=self.disconnect)
        self.disconnect_button.pack(side="left", expand=True, padx=2)

        # Commands
        self.command_frame = ctk.CTkFrame(self.left_panel)
        self.command_frame.pack(pady=10, padx=20, fill="x")
        self.command_frame.grid_columnconfigure((0, 1), weight=1)
        self.command_widgets = []

        ctk.CTkLabel(self.command_frame, text="Commands", font=("Roboto", 14, "bold")).grid(
            row=0, column=0, columnspan=2, pady=(10, 5))

        simple = [
            ("Get Identity", sg_commands.get_identity),
            ("Get Version", sg_commands.get_version),
            ("Get Status", sg_commands.get_status),
            ("Get Status (verbose)", lambda: sg_commands.get_status(verbose=True)),
            ("Clear Errors", sg_commands.clear_errors),
            ("Get Frequency", sg_commands.get_frequency),
            ("Get PA Power", sg_commands.get_pa_power),
            ("Get Power", sg_commands.get_power_setpoint),
            ("DLL Enable", lambda: sg_commands.dll_enable(True)),
            ("DLL Disable", lambda: sg_commands.dll_enable(False)),
            ("RF Enable", lambda: sg_commands.rf_enable(True)),
            ("RF Disable", lambda: sg_commands.rf_enable(False)),
        ]
        for i, (label, factory) in enumerate(simple):
            button = ctk.CTkButton(self.command_frame, text=label,
                                   command=lambda f=factory: self.send_command(f))
            button.grid(row=1 + i // 2, column=i % 2, padx=5, pady=3, sticky="ew")
            self.command_widgets.append(button)

        row = 1 + (len(simple) + 1) // 2
        self.frequency_entry = ctk.CTkEntry(self.command_frame, placeholder_text="Frequency (MHz)")
        self.frequency_entry.grid(row=row, column=0, padx=5, pady=3, sticky="ew")
        set_freq = ctk.CTkButton(self.command_frame, text="Set Frequency",
                                 command=lambda: self.send_command(
                                     lambda: sg_commands.set_frequency(self.frequency_entry.get())))
        set_freq.grid(row=row, column=1, padx=5, pady=3, sticky="ew")

        self.power_entry = ctk.CTkEntry(self.command_frame, placeholder_text="Power (dBm)")
        self.power_entry.grid(row=row + 1, column=0, padx=5, pady=3, sticky="ew")
        set_power = ctk.CTkButton(self.command_frame, text="Set Power",
                                  command=lambda: self.send_command(
                                      lambda: sg_commands.set_power(self.power_entry.get())))
        set_power.grid(row=row + 1, column=1, padx=5, pady=3, sticky="ew")

        dll_frame = ctk.CTkFrame(self.command_frame, fg_color="transparent")
        dll_frame.grid(row=row + 2, column=0, padx=5, pady=3, sticky="ew")
        self.dll_entries = []
        for i in range(6):
            entry = ctk.CTkEntry(dll_frame, width=40)
            entry.pack(side="left", padx=1)
            self.dll_entries.append(entry)
        set_dll = ctk.CTkButton(self.command_frame, text="Configure DLL",
                                command=lambda: self.send_command(
                                    lambda: sg_commands.configure_dll(*[e.get() for e in self.dll_entries])))
        set_dll.grid(row=row + 2, column=1, padx=5, pady=(3, 10), sticky="ew")

        self.command_widgets += [self.frequency_entry, set_freq, self.power_entry, set_power,
                                 set_dll] + self.dll_entries

        # Message log
        ctk.CTkLabel(self.left_panel, text="Message Log", font=("Roboto", 12, "bold")).pack(anchor="w", padx=20)
        self.log_text = ctk.CTkTextbox(self.left_panel, height=80)
        self.log_text.pack(pady=(5, 10), padx=20, fill="both", expand=True)

    def create_sweep_panel(self):
        """Create sweep parameters and the S11 plot"""
        sweep_frame = ctk.CTkFrame(self.right_panel)
        sweep_frame.pack(pady=10, padx=10, fill="x")

        ctk.CTkLabel(sweep_frame, text="S11 Sweep", font=("Roboto", 14, "bold")).grid(
            row=0, column=0, columnspan=5, pady=(10, 5))

        fields = [("Start (MHz)", "2400"), ("Stop (MHz)", "2500"), ("Step (MHz)", "10"),
                  ("Power (dBm)", "20"), ("Power (W)", "0.1")]
        entries = []
        for col, (label, default) in enumerate(fields):
            ctk.CTkLabel(sweep_frame, text=label).grid(row=1, column=col, padx=5, sticky="w")
            entry = ctk.CTkEntry(sweep_frame, width=110)
            entry.insert(0, default)
            entry.grid(row=2, column=col, padx=5, pady=(0, 10))
            entries.append(entry)
        self.swp_start, self.swp_stop, self.swp_step, self.swp_power_dbm, self.swp_power_watt = entries

        # Power can be entered in either unit; editing one updates the other
        self.swp_power_dbm.bind("<KeyRelease>", self.on_power_dbm_edited)
        self.swp_power_watt.bind("<KeyRelease>", self.on_power_watt_edited)

        self.execute_sweep_button = ctk.CTkButton(
            sweep_frame,
            text="Execute Sweep",
            fg_color=("#16A500", "#14A007"),
            hover_color="#043100",
            font=("Roboto", 14, "bold"),
            command=self.execute_sweep
        )
        self.execute_sweep_button.grid(row=3, column=0, columnspan=2, padx=5, pady=(0, 10), sticky="ew")

        self.log_notation_button = ctk.CTkButton(
            sweep_frame, text="S11 (dB)",
            command=lambda: self.draw_plot(PlotNotation.LOGARITHMIC))
        self.log_notation_button.grid(row=3, column=3, padx=5, pady=(0, 10))
        self.linear_notation_button = ctk.CTkButton(
            sweep_frame, text="Reflection (%)",
            command=lambda: self.draw_plot(PlotNotation.LINEAR))
        self.linear_notation_button.grid(row=3, column=4, padx=5, pady=(0, 10))

        self.command_widgets.append(self.execute_sweep_button)

        # Matplotlib figure
        self.figure = Figure(figsize=(8, 6), dpi=100)
        self.ax = self.figure.add_subplot(111)
        self.ax.set_title("S11 Sweep")
        self.ax.set_xlabel("Frequency (MHz)")
        self.ax.set_ylabel(PlotNotation.LOGARITHMIC.value)
        self.ax.grid(True, alpha=0.3)

        self.canvas = FigureCanvasTkAgg(self.figure, self.right_panel)
        self.canvas.get_tk_widget().pack(pady=10, padx=10, fill="both", expand=True)

    def log(self, message):
        """Add message to log"""
        self.log_text.insert("end", f"{message}\n")
        self.log_text.see("end")

    def on_transcript(self, direction, text):
        """Log sink of the dispatcher; may be called from the worker thread"""
        line = format_transcript_line(direction, text)
        self._post(lambda: self.log(line))

    def _post(self, func):
        """Run func on the Tk main thread"""
        if threading.current_thread() is threading.main_thread():
            func()
        else:
            self.root.after(0, func)

    def _submit(self, work, on_done):
        """
        Run one exchange off the main thread and hand the result to on_done.

        Protocol and input errors are routed to _task_failed; anything else
        propagates.
        """
        def task():
            try:
                result = work()
            except (SgControlError, ValueError) as e:
                self._post(lambda err=e: self._task_failed(err))
                return
            self._post(lambda: on_done(result))

        if self.run_in_background:
            threading.Thread(target=task, daemon=True).start()
        else:
            task()

    def _task_failed(self, error):
        if isinstance(error, SweepError):
            self.log(f"ERROR: {error}")
            messagebox.showwarning("Sweep Error", str(error))
        else:
            self.log(f"ERROR: Invalid parameter - {error}")
        self.execute_sweep_button.configure(state="normal" if self.transport.is_open else "disabled")
        self._check_connection()

    def _check_connection(self):
        """Reset the UI if the transport closed itself after an I/O error"""
        if not self.transport.is_open and self.disconnect_button.cget("state") == "normal":
            self.log("ERROR: Serial connection lost")
            self.show_connection_buttons(True)
            self.show_main_buttons(False)

    # Serial port management

    def show_connection_buttons(self, enable):
        """Enable/Disable the widgets used to establish the serial connection"""
        state = "normal" if enable else "disabled"
        self.port_menu.configure(state=state)
        self.connect_button.configure(state=state)
        self.autoconnect_button.configure(state=state)
        self.disconnect_button.configure(state="disabled" if enable else "normal")

    def show_main_buttons(self, enable):
        """Enable/Disable the widgets that send commands to the board"""
        state = "normal" if enable else "disabled"
        for widget in self.command_widgets:
            widget.configure(state=state)

    def update_port_list(self):
        """Refresh the port menu if the available ports changed"""
        devices = list_devices()
        if port_names_changed(self.port_list, devices):
            names = [d.port_name for d in devices]
            self.port_menu.configure(values=names)
            if self.port_menu.get() not in names and not self.transport.is_open:
                self.port_menu.set(names[0] if names else "")
        self.port_list = devices

    def _poll_ports(self):
        self.update_port_list()
        self._port_poll_job = self.root.after(PORT_POLL_INTERVAL, self._poll_ports)

    def on_port_selected(self, port_name):
        self.transport.port_name = port_name

    def connect(self):
        """Open the selected port and enable the command widgets"""
        self.transport.port_name = self.port_menu.get().strip()
        try:
            self.transport.open()
        except ConnectionError as e:
            self.log(f"ERROR: {e}")
            return False
        self.show_connection_buttons(False)
        self.show_main_buttons(True)
        self.log(f"Port opened: {self.transport.port_name}")
        return True

    def disconnect(self):
        """Close the port and disable the command widgets"""
        if not self.transport.is_open:
            return
        self.disconnect_button.configure(state="disabled")
        self.show_main_buttons(False)
        if self.dispatcher.busy:
            self.log("Cancelling exchange in progress...")
        # close() waits for the exchange in flight, so keep it off the Tk thread
        self._submit(self.dispatcher.close, lambda _: self._disconnected())

    def _disconnected(self):
        self.show_connection_buttons(True)
        self.show_main_buttons(False)
        self.log("Port closed")

    def autoconnect(self):
        """Connect to the first port that identifies as a signal generator board"""
        result = select_device(list_devices())
        if not result.found:
            self.log("ERROR: No signal generator board auto-detected")
            messagebox.showerror(
                "Could not auto-detect signal generator board",
                "No signal generator board auto-detected at any port.\n"
                "Serial connection cannot be established.\n\n"
                "1. Ensure signal generator board is connected.\n"
                "2. Try again.\n"
                "3. If problem persist try manual connect")
            return False
        if result.multiple:
            self.log(f"Multiple signal generator boards found, using {result.selected.port_name}")
        self.port_menu.set(result.selected.port_name)
        return self.connect()

    # Commands

    def send_command(self, factory):
        """Build a command from the widgets and send it"""
        try:
            command = factory()
        except ValueError as e:
            self.log(f"ERROR: Invalid parameter - {e}")
            return
        self._submit(lambda: self.dispatcher.send(command), self._command_finished)

    def _command_finished(self, response):
        if response.status is ResponseStatus.ERROR_SENTINEL:
            self.log("WARNING: Device reported an error")
        elif response.status is not ResponseStatus.COMPLETE:
            self.log(f"WARNING: No complete response ({response.status.value})")
        self._check_connection()

    # Sweeping

    def on_power_dbm_edited(self, event=None):
        try:
            watt = dbm_to_watt(float(self.swp_power_dbm.get()))
        except ValueError:
            return
        self.swp_power_watt.delete(0, "end")
        self.swp_power_watt.insert(0, f"{watt:g}")

    def on_power_watt_edited(self, event=None):
        try:
            dbm = watt_to_dbm(float(self.swp_power_watt.get()))
        except ValueError:
            return
        self.swp_power_dbm.delete(0, "end")
        self.swp_power_dbm.insert(0, f"{dbm:.2f}")

    def execute_sweep(self):
        """Run an S11 sweep and plot it if it succeeds"""
        params = (self.swp_start.get(), self.swp_stop.get(),
                  self.swp_step.get(), self.swp_power_dbm.get())
        self.execute_sweep_button.configure(state="disabled")
        self.log(f"Sweep: {params[0]} - {params[1]} MHz, step {params[2]} MHz, {params[3]} dBm")
        self._submit(lambda: run_sweep(self.dispatcher, *params), self._sweep_finished)

    def _sweep_finished(self, result):
        self.execute_sweep_button.configure(state="normal")
        self.sweep_result = result
        self.log(f"Sweep complete: {len(result)} points")
        if result.skipped:
            lines = ", ".join(str(i) for i, _ in result.skipped)
            self.log(f"WARNING: skipped malformed sweep line(s) {lines}")
        self.draw_plot(PlotNotation.LOGARITHMIC)

    def draw_plot(self, notation):
        """Draw the last sweep in the given notation"""
        if self.sweep_result is None or not len(self.sweep_result):
            return
        self.notation = notation
        freqs, values, (y_min, y_max), label = plot_series(self.sweep_result, notation)

        self.ax.clear()
        self.ax.plot(freqs, values, color="#1f6aa5", linewidth=2, marker="o", markersize=3)
        if freqs[-1] != freqs[0]:
            self.ax.set_xlim(freqs[0], freqs[-1])
        if y_max > y_min:
            self.ax.set_ylim(y_min, y_max)
        self.ax.set_xlabel("Frequency (MHz)")
        self.ax.set_ylabel(label)
        self.ax.set_title("S11 Sweep")
        self.ax.grid(True, alpha=0.3)
        self.canvas.draw()

    def run(self):
        """Start the GUI main loop"""
        self._poll_ports()
        self.root.mainloop()
        self.dispatcher.close()


def main():
    app = SignalGeneratorGUI()
    app.run()


if __name__ == "__main__":
    main()
