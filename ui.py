# ui.py
import os
import sys
import tkinter as tk
import ttkbootstrap as ttk
from ttkbootstrap.toast import ToastNotification
from tkinter import messagebox, filedialog
import datetime
import subprocess
import logging

from api import ApiError
from models import CashierSystem
from schemas import DecodeError, NewProduct, PaymentMethod, UserRole
from utils import (
    export_inventory_csv,
    export_inventory_excel,
    generate_financial_report,
    generate_inventory_report,
    generate_orders_report,
    generate_pdf_receipt,
    generate_txt_receipt,
    import_inventory_csv,
    import_inventory_excel,
    receipt_file_path,
)

logger = logging.getLogger("pos_client.ui")

BOOTSTRAP_THEMES = {
    "dark": "darkly",
    "light": "cosmo",
    "default": "cosmo"
}

TOAST_STYLES = {
    "success": "success",
    "warning": "warning",
    "error": "danger",
    "info": "info",
}


class CashierUI:
    def __init__(self, system: CashierSystem, config=None):
        self.sys = system
        self.config = config or {}
        self.currency = self.config.get("currency", "$")

        # route cart and checkout notices to toasts
        self.sys.notify = self.notify
        self.sys.cart.notify = self.notify

        bootstrap_theme = BOOTSTRAP_THEMES.get(self.config.get("theme", "default"), "cosmo")
        self.root = ttk.Window(themename=bootstrap_theme)
        self.root.title("POS Dashboard")
        self.root.geometry("1200x768")
        self.root.minsize(900, 600)

        self.search_var = tk.StringVar()
        self.search_var.trace_add("write", self._on_search_change)
        self.scan_var = tk.StringVar()
        self.customer_var = tk.StringVar()
        self.payment_var = tk.StringVar(value=PaymentMethod.CASH.label)
        self.total_var = tk.StringVar(value=self._money(0))
        self.receipt_type_var = tk.StringVar(value=self.config.get("receipt", {}).get("format", "txt"))
        self.orders = []

        self._build_gui()
        self._refresh_catalog()
        self._load_customers()
        self._refresh_cart()

    def _money(self, value):
        return f"{self.currency}{value:,.2f}"

    def notify(self, level, message):
        """Show a core notice as a toast and in the status bar."""
        self._update_status(message)
        ToastNotification(
            title=level.capitalize(),
            message=message,
            duration=3000,
            bootstyle=TOAST_STYLES.get(level, "info"),
        ).show_toast()

    def _build_gui(self):
        """Build the main GUI interface"""
        self._create_menu_bar()
        self._create_status_bar()

        main_frame = ttk.Frame(self.root)
        main_frame.pack(expand=True, fill='both', padx=10, pady=10)

        self.notebook = ttk.Notebook(main_frame, bootstyle="primary")
        self.notebook.pack(expand=True, fill='both')

        self._build_pos_tab()
        self._build_orders_tab()
        self._build_inventory_tab()
        self._build_customers_tab()
        self._build_users_tab()
        self._build_reports_tab()

    # --- Tab 1: Point of Sale ---
    def _build_pos_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Point of Sale")

        left = ttk.Frame(frame)
        left.pack(side=tk.LEFT, fill=tk.BOTH, expand=True, padx=5, pady=5)
        right = ttk.Frame(frame)
        right.pack(side=tk.RIGHT, fill=tk.BOTH, padx=5, pady=5, ipadx=10)

        search_frame = ttk.LabelFrame(left, text="Products", bootstyle="primary")
        search_frame.pack(fill=tk.X, padx=5, pady=5)
        ttk.Label(search_frame, text="Search:").grid(row=0, column=0, padx=5, pady=5, sticky=tk.W)
        ttk.Entry(search_frame, textvariable=self.search_var, width=30).grid(row=0, column=1, padx=5, pady=5)
        ttk.Label(search_frame, text="Scan:").grid(row=0, column=2, padx=5, pady=5, sticky=tk.W)
        scan_entry = ttk.Entry(search_frame, textvariable=self.scan_var, width=20)
        scan_entry.grid(row=0, column=3, padx=5, pady=5)
        scan_entry.bind('<Return>', lambda e: self._scan())
        ttk.Button(search_frame, text="Refresh", command=self._refresh_catalog, bootstyle="info").grid(row=0, column=4, padx=5, pady=5)

        cols = ("Product", "Variant", "SKU", "Price", "Stock")
        self.products_tv = ttk.Treeview(left, columns=cols, show='headings', height=18)
        for c, width, anchor in zip(cols, (220, 120, 120, 90, 60), (tk.W, tk.W, tk.W, tk.E, tk.CENTER)):
            self.products_tv.column(c, width=width, anchor=anchor)
            self.products_tv.heading(c, text=c)
        self.products_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)
        self.products_tv.bind("<Double-1>", lambda e: self._add_selected())

        ttk.Button(left, text="Add to Cart", command=self._add_selected, bootstyle="success").pack(anchor=tk.W, padx=5, pady=5)

        cart_frame = self.cart_frame = ttk.LabelFrame(right, text="Cart", bootstyle="primary")
        cart_frame.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        cart_cols = ("Item", "Qty", "Price", "Line Total")
        self.cart_tv = ttk.Treeview(cart_frame, columns=cart_cols, show='headings', height=12)
        for c, width, anchor in zip(cart_cols, (200, 50, 90, 100), (tk.W, tk.CENTER, tk.E, tk.E)):
            self.cart_tv.column(c, width=width, anchor=anchor)
            self.cart_tv.heading(c, text=c)
        self.cart_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        cart_btns = ttk.Frame(cart_frame)
        cart_btns.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(cart_btns, text="+", width=3, command=lambda: self._change_qty(1)).pack(side=tk.LEFT, padx=2)
        ttk.Button(cart_btns, text="-", width=3, command=lambda: self._change_qty(-1)).pack(side=tk.LEFT, padx=2)
        ttk.Button(cart_btns, text="Remove", command=self._remove_selected, bootstyle="danger").pack(side=tk.LEFT, padx=5)
        ttk.Button(cart_btns, text="Clear Cart", command=self._clear_cart, bootstyle="warning").pack(side=tk.LEFT, padx=5)

        checkout_frame = ttk.LabelFrame(right, text="Checkout", bootstyle="primary")
        checkout_frame.pack(fill=tk.X, padx=5, pady=5)

        ttk.Label(checkout_frame, text="TOTAL:", font=("Arial", 12, "bold")).grid(row=0, column=0, padx=5, pady=10, sticky=tk.W)
        ttk.Label(checkout_frame, textvariable=self.total_var, font=("Arial", 14, "bold")).grid(row=0, column=1, padx=5, pady=10, sticky=tk.E)

        ttk.Label(checkout_frame, text="Customer:").grid(row=1, column=0, padx=5, pady=5, sticky=tk.W)
        self.customer_combo = ttk.Combobox(checkout_frame, textvariable=self.customer_var, state="readonly")
        self.customer_combo.grid(row=1, column=1, padx=5, pady=5, sticky=tk.E)
        self.customer_combo.bind("<<ComboboxSelected>>", self._on_customer_selected)
        ttk.Button(checkout_frame, text="New Customer", command=self._show_add_customer, bootstyle="secondary-outline").grid(row=2, column=1, padx=5, pady=2, sticky=tk.E)

        ttk.Label(checkout_frame, text="Payment Method:").grid(row=3, column=0, padx=5, pady=5, sticky=tk.W)
        payment_combo = ttk.Combobox(checkout_frame, textvariable=self.payment_var, state="readonly")
        payment_combo["values"] = [m.label for m in PaymentMethod]
        payment_combo.grid(row=3, column=1, padx=5, pady=5, sticky=tk.E)
        payment_combo.bind("<<ComboboxSelected>>", self._on_payment_selected)

        ttk.Radiobutton(checkout_frame, text="Text Receipt", variable=self.receipt_type_var, value="txt").grid(row=4, column=0, padx=5, pady=2, sticky=tk.W)
        ttk.Radiobutton(checkout_frame, text="PDF Receipt", variable=self.receipt_type_var, value="pdf").grid(row=4, column=1, padx=5, pady=2, sticky=tk.W)

        self.checkout_btn = ttk.Button(checkout_frame, text="CHECKOUT", command=self._checkout, bootstyle="success")
        self.checkout_btn.grid(row=5, column=0, columnspan=2, padx=5, pady=15, sticky=tk.EW)

    # --- Tab 2: Orders ---
    def _build_orders_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Orders")

        cols = ("Invoice", "Date", "Customer", "Amount", "Status")
        self.orders_tv = ttk.Treeview(frame, columns=cols, show='headings', height=20)
        for c in cols:
            self.orders_tv.heading(c, text=c)
        self.orders_tv.column("Amount", anchor=tk.E)
        self.orders_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        btns = ttk.Frame(frame)
        btns.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(btns, text="Refresh", command=self._refresh_orders, bootstyle="info").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Return Items", command=self._show_return_dialog, bootstyle="warning").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Export Sales Report", command=self._export_orders_report).pack(side=tk.LEFT, padx=5)

    # --- Tab 3: Inventory ---
    def _build_inventory_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Inventory")

        cols = ("Product", "Variants", "Total Stock", "Price Range")
        self.inventory_tv = ttk.Treeview(frame, columns=cols, show='headings', height=20)
        for c, width, anchor in zip(cols, (260, 80, 100, 180), (tk.W, tk.CENTER, tk.CENTER, tk.E)):
            self.inventory_tv.column(c, width=width, anchor=anchor)
            self.inventory_tv.heading(c, text=c)
        self.inventory_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)
        self.inventory_tv.bind("<Double-1>", lambda e: self._show_product_dialog(self._selected_product()))

        btns = ttk.Frame(frame)
        btns.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(btns, text="Add Product", command=lambda: self._show_product_dialog(None), bootstyle="success").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Edit Product", command=lambda: self._show_product_dialog(self._selected_product())).pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="History", command=self._show_history_dialog, bootstyle="info").pack(side=tk.LEFT, padx=5)

    # --- Tab 4: Customers ---
    def _build_customers_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Customers")

        top = ttk.Frame(frame)
        top.pack(fill=tk.X, padx=5, pady=5)
        self.customer_search_var = tk.StringVar()
        ttk.Label(top, text="Search:").pack(side=tk.LEFT, padx=5)
        search_entry = ttk.Entry(top, textvariable=self.customer_search_var, width=30)
        search_entry.pack(side=tk.LEFT, padx=5)
        search_entry.bind('<Return>', lambda e: self._load_customers())
        ttk.Button(top, text="Search", command=self._load_customers, bootstyle="info").pack(side=tk.LEFT, padx=5)
        ttk.Button(top, text="Add Customer", command=self._show_add_customer, bootstyle="success").pack(side=tk.LEFT, padx=5)

        cols = ("Name", "Phone", "Email", "Balance")
        self.customers_tv = ttk.Treeview(frame, columns=cols, show='headings', height=20)
        for c in cols:
            self.customers_tv.heading(c, text=c)
        self.customers_tv.column("Balance", anchor=tk.E)
        self.customers_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

    # --- Tab 5: Users ---
    def _build_users_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Users")

        cols = ("Name", "Email", "Role")
        self.users_tv = ttk.Treeview(frame, columns=cols, show='headings', height=20)
        for c in cols:
            self.users_tv.heading(c, text=c)
        self.users_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        btns = ttk.Frame(frame)
        btns.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(btns, text="Refresh", command=self._refresh_users, bootstyle="info").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Add User", command=self._show_add_user, bootstyle="success").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Delete User", command=self._delete_user, bootstyle="danger").pack(side=tk.LEFT, padx=5)

    # --- Tab 6: Reports ---
    def _build_reports_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Reports")

        fin = ttk.LabelFrame(frame, text="Financial Summary", bootstyle="primary")
        fin.pack(fill=tk.X, padx=10, pady=10)
        self.fin_vars = {}
        for i, key in enumerate(("revenue", "expenses", "net_profit", "assets", "liabilities", "equity")):
            ttk.Label(fin, text=key.replace('_', ' ').title() + ":").grid(row=i // 3, column=(i % 3) * 2, padx=5, pady=5, sticky=tk.W)
            var = tk.StringVar(value="-")
            ttk.Label(fin, textvariable=var, font=("Arial", 10, "bold")).grid(row=i // 3, column=(i % 3) * 2 + 1, padx=5, pady=5, sticky=tk.W)
            self.fin_vars[key] = var
        fin_btns = ttk.Frame(fin)
        fin_btns.grid(row=2, column=0, columnspan=6, pady=10)
        ttk.Button(fin_btns, text="Load", command=self._load_financials, bootstyle="info").pack(side=tk.LEFT, padx=5)
        ttk.Button(fin_btns, text="Export CSV", command=lambda: self._export_financials("csv")).pack(side=tk.LEFT, padx=5)
        ttk.Button(fin_btns, text="Export PDF", command=lambda: self._export_financials("pdf")).pack(side=tk.LEFT, padx=5)

        inv = ttk.LabelFrame(frame, text="Inventory", bootstyle="primary")
        inv.pack(fill=tk.X, padx=10, pady=10)
        ttk.Button(inv, text="Export to CSV", command=self._export_csv).pack(side=tk.LEFT, padx=5, pady=5)
        ttk.Button(inv, text="Export to Excel", command=self._export_excel).pack(side=tk.LEFT, padx=5, pady=5)
        ttk.Button(inv, text="Import from CSV", command=self._import_csv).pack(side=tk.LEFT, padx=5, pady=5)
        ttk.Button(inv, text="Import from Excel", command=self._import_excel).pack(side=tk.LEFT, padx=5, pady=5)
        ttk.Button(inv, text="Low Stock Report", command=self._low_stock_report).pack(side=tk.LEFT, padx=5, pady=5)

    def _create_menu_bar(self):
        """Create the application menu bar"""
        menubar = tk.Menu(self.root)
        self.root.config(menu=menubar)

        file_menu = tk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="File", menu=file_menu)
        file_menu.add_command(label="Export Inventory", command=self._export_csv)
        file_menu.add_command(label="Import Inventory", command=self._import_csv)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self.root.quit)

        view_menu = tk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="View", menu=view_menu)
        for label, name in (("Default", "default"), ("Light", "light"), ("Dark", "dark")):
            view_menu.add_command(label=label, command=lambda n=name: self._set_theme(n))

    def _create_status_bar(self):
        """Create status bar at the bottom of the window"""
        self.status_bar = ttk.Frame(self.root, bootstyle="secondary")
        self.status_bar.pack(side=tk.BOTTOM, fill=tk.X)

        self.status_var = tk.StringVar(value="Ready")
        ttk.Label(self.status_bar, textvariable=self.status_var, padding=(5, 2), bootstyle="inverse-secondary").pack(side=tk.LEFT, fill=tk.X, expand=True)

        self.datetime_var = tk.StringVar()
        ttk.Label(self.status_bar, textvariable=self.datetime_var, padding=(5, 2), bootstyle="inverse-secondary").pack(side=tk.RIGHT)
        self._update_datetime()

    def _set_theme(self, theme_name):
        bootstrap_theme = BOOTSTRAP_THEMES.get(theme_name, "cosmo")
        self.root.style.theme_use(bootstrap_theme)
        logger.info(f"Applied theme: {theme_name} (bootstrap: {bootstrap_theme})")

    def _update_datetime(self):
        self.datetime_var.set(datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
        self.root.after(1000, self._update_datetime)

    def _update_status(self, message):
        self.status_var.set(message)
        logger.info(message)

    # Catalog
    def _refresh_catalog(self):
        per_page = self.config.get("api", {}).get("per_page", 100)
        if self.sys.refresh_catalog(per_page=per_page):
            self._show_products(self.sys.search(self.search_var.get()))
            self._refresh_cart()
            self._show_inventory()

    def _on_search_change(self, *args):
        self._show_products(self.sys.search(self.search_var.get()))

    def _show_products(self, products):
        self.products_tv.delete(*self.products_tv.get_children())
        for product in products:
            for v in product.variants:
                self.products_tv.insert("", tk.END, iid=v.id, values=(
                    product.name, v.label, v.sku, self._money(v.price), v.stock_quantity
                ))

    def _add_selected(self):
        selected = self.products_tv.selection()
        if not selected:
            messagebox.showinfo("Selection", "Please select a product to add")
            return
        found = self.sys.catalog.find_variant(selected[0])
        if found and self.sys.add_to_cart(*found):
            self._refresh_cart()

    def _scan(self):
        if self.sys.scan_and_add(self.scan_var.get()):
            self._refresh_cart()
        self.scan_var.set("")

    # Cart
    def _refresh_cart(self):
        self.cart_tv.delete(*self.cart_tv.get_children())
        for line in self.sys.cart:
            self.cart_tv.insert("", tk.END, iid=line.cart_id, values=(
                line.label, line.quantity, self._money(line.price), self._money(line.line_total)
            ))
        self.total_var.set(self._money(self.sys.cart_total()))
        count = self.sys.cart.item_count()
        self.cart_frame.configure(text=f"Cart ({count} item{'' if count == 1 else 's'})")
        self.checkout_btn.configure(state=tk.NORMAL if len(self.sys.cart) else tk.DISABLED)

    def _selected_line(self):
        selected = self.cart_tv.selection()
        if not selected:
            messagebox.showinfo("Selection", "Please select a cart item")
            return None
        return selected[0]

    def _change_qty(self, delta):
        cart_id = self._selected_line()
        if cart_id and self.sys.cart.update_quantity(cart_id, delta):
            self._refresh_cart()
            self.cart_tv.selection_set(cart_id)

    def _remove_selected(self):
        cart_id = self._selected_line()
        if cart_id:
            self.sys.cart.remove_from_cart(cart_id)
            self._refresh_cart()
            self._update_status("Item removed from cart")

    def _clear_cart(self):
        if not len(self.sys.cart):
            return
        if messagebox.askyesno("Clear Cart", "Are you sure you want to clear the cart?"):
            self.sys.cart.clear_cart()
            self._refresh_cart()
            self._update_status("Cart cleared")

    # Customers
    def _load_customers(self):
        self.sys.load_customers(self.customer_search_var.get().strip())
        self._fill_customers()

    def _fill_customers(self):
        self.customer_combo["values"] = ["Walk-in Customer"] + [c.name for c in self.sys.customers]
        customer = self.sys.selection.customer
        self.customer_var.set(customer.name if customer else "Walk-in Customer")
        self.customers_tv.delete(*self.customers_tv.get_children())
        for c in self.sys.customers:
            self.customers_tv.insert("", tk.END, iid=c.id, values=(
                c.name, c.phone or "", c.email or "", self._money(c.balance)
            ))

    def _on_customer_selected(self, event=None):
        index = self.customer_combo.current()
        self.sys.select_customer(self.sys.customers[index - 1] if index > 0 else None)

    def _on_payment_selected(self, event=None):
        label = self.payment_var.get()
        for method in PaymentMethod:
            if method.label == label:
                self.sys.set_payment_method(method)

    def _show_add_customer(self):
        dialog = tk.Toplevel(self.root)
        dialog.title("Add New Customer")
        dialog.transient(self.root)
        dialog.grab_set()

        fields = ("Full Name", "Email", "Phone", "Address")
        field_vars = [tk.StringVar() for _ in fields]
        for i, (label, var) in enumerate(zip(fields, field_vars)):
            ttk.Label(dialog, text=label + ":").grid(row=i, column=0, padx=5, pady=5, sticky=tk.E)
            ttk.Entry(dialog, textvariable=var, width=30).grid(row=i, column=1, padx=5, pady=5)

        def save():
            result = self.sys.quick_add_customer(*(v.get() for v in field_vars))
            if result:
                self._fill_customers()
                dialog.destroy()

        ttk.Button(dialog, text="Save Customer", command=save, bootstyle="success").grid(row=len(fields), column=1, padx=5, pady=10, sticky=tk.E)

    # Checkout
    def _checkout(self):
        """Submit the cart and write a receipt for the completed sale."""
        self.checkout_btn.configure(state=tk.DISABLED)
        try:
            result = self.sys.checkout()
        finally:
            self._refresh_cart()
        if not result:
            return

        self.payment_var.set(PaymentMethod.CASH.label)
        self._fill_customers()

        receipt_dir = self.config.get("receipt", {}).get("receipt_dir", "receipts")
        try:
            if self.receipt_type_var.get() == "pdf":
                path = generate_pdf_receipt(result.receipt, receipt_file_path(receipt_dir, result.receipt, "pdf"), currency=self.currency)
                self._open_file(path)
            else:
                path = generate_txt_receipt(result.receipt, receipt_file_path(receipt_dir, result.receipt, "txt"), currency=self.currency)
            self._update_status(f"Invoice {result.invoice_number}. Receipt saved to {path}")
        except OSError as e:
            messagebox.showerror("Receipt Error", f"Sale recorded but the receipt could not be saved: {e}")
            logger.error(f"Receipt error: {e}")
        self._refresh_catalog()

    # Orders and returns
    def _refresh_orders(self):
        result = self.sys.load_orders()
        if not result:
            return
        self.orders = result.value
        self.orders_tv.delete(*self.orders_tv.get_children())
        for i, order in enumerate(self.orders):
            self.orders_tv.insert("", tk.END, iid=str(i), values=(
                order.invoice_number, order.created_at or "", order.customer_name,
                self._money(order.total_amount), order.status
            ))

    def _show_return_dialog(self):
        selected = self.orders_tv.selection()
        if not selected:
            messagebox.showwarning("Warning", "Please select an order")
            return
        order = self.orders[int(selected[0])]

        dialog = tk.Toplevel(self.root)
        dialog.title(f"Process Return - Invoice #{order.invoice_number}")
        dialog.transient(self.root)
        dialog.grab_set()

        qty_vars = {}
        for i, item in enumerate(order.items):
            sku = item.variant.sku if item.variant else item.product_variant_id
            ttk.Label(dialog, text=f"{sku} (sold {item.quantity})").grid(row=i, column=0, padx=5, pady=5, sticky=tk.W)
            var = tk.StringVar(value="0")
            ttk.Spinbox(dialog, from_=0, to=item.quantity, textvariable=var, width=5).grid(row=i, column=1, padx=5, pady=5)
            qty_vars[item.product_variant_id] = var

        reason_var = tk.StringVar()
        ttk.Label(dialog, text="Reason:").grid(row=len(order.items), column=0, padx=5, pady=5, sticky=tk.W)
        ttk.Entry(dialog, textvariable=reason_var, width=30).grid(row=len(order.items), column=1, padx=5, pady=5)

        def confirm():
            quantities = {vid: var.get() for vid, var in qty_vars.items()}
            if self.sys.process_return(order, quantities, reason_var.get()):
                dialog.destroy()
                self._refresh_orders()
                self._refresh_catalog()

        ttk.Button(dialog, text="Confirm Return", command=confirm, bootstyle="danger").grid(row=len(order.items) + 1, column=1, padx=5, pady=10, sticky=tk.E)

    def _export_dir(self):
        export_dir = self.config.get("export", {}).get("default_dir", "exports")
        os.makedirs(export_dir, exist_ok=True)
        return export_dir

    def _open_file(self, file_path):
        try:
            if os.name == 'nt':  # Windows
                os.startfile(file_path)
            elif sys.platform == 'darwin':
                subprocess.call(['open', file_path])
            else:
                subprocess.call(['xdg-open', file_path])
        except OSError as e:
            logger.warning(f"Could not open {file_path}: {e}")

    def _stamp(self):
        return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

    def _export_orders_report(self):
        if not self.orders:
            self._refresh_orders()
        path = os.path.join(self._export_dir(), f"sales_{self._stamp()}.csv")
        try:
            df, summary = generate_orders_report(self.orders, path)
        except OSError as e:
            messagebox.showerror("Error", f"Failed to export sales report: {e}")
            return
        if df is None:
            messagebox.showinfo("Info", summary)
            return
        messagebox.showinfo("Export", f"{summary['num_transactions']} orders, total {self._money(summary['total_sales'])}\nSaved to {path}")

    # Reports
    def _fetch_financials(self):
        try:
            return self.sys.api.profit_loss(), self.sys.api.balance_sheet()
        except (ApiError, DecodeError) as e:
            logger.error(f"Loading financial reports failed: {e}")
            self.notify("error", getattr(e, "message", None) or "Could not load reports.")
            return None

    def _load_financials(self):
        reports = self._fetch_financials()
        if reports:
            _, summary = generate_financial_report(*reports)
            for key, var in self.fin_vars.items():
                var.set(self._money(summary[key]))

    def _export_financials(self, fmt):
        reports = self._fetch_financials()
        if not reports:
            return
        path = os.path.join(self._export_dir(), f"financials_{self._stamp()}.{fmt}")
        try:
            generate_financial_report(*reports, file_path=path, format=fmt)
        except OSError as e:
            messagebox.showerror("Error", f"Failed to generate report: {e}")
            return
        messagebox.showinfo("Report Generated", f"Financial report saved to:\n{path}")
        if fmt == "pdf":
            self._open_file(path)

    def _export_csv(self):
        path = filedialog.asksaveasfilename(defaultextension=".csv", filetypes=[("CSV", "*.csv")])
        if path:
            export_inventory_csv(self.sys.catalog, path)
            messagebox.showinfo("Export", "Inventory exported.")

    def _export_excel(self):
        path = filedialog.asksaveasfilename(defaultextension=".xlsx", filetypes=[("Excel", "*.xlsx")])
        if path:
            export_inventory_excel(self.sys.catalog, path)
            messagebox.showinfo("Export", "Inventory exported to Excel.")

    def _import(self, importer, filetypes):
        path = filedialog.askopenfilename(filetypes=filetypes)
        if not path:
            return
        try:
            created, skipped = importer(self.sys.api, path)
        except (ApiError, DecodeError, ValueError, OSError) as e:
            messagebox.showerror("Error", f"Failed to import: {e}")
            logger.error(f"Inventory import failed: {e}")
            return
        messagebox.showinfo("Import", f"{created} products imported, {skipped} skipped.")
        self._refresh_catalog()

    def _import_csv(self):
        self._import(import_inventory_csv, [("CSV", "*.csv")])

    def _import_excel(self):
        self._import(import_inventory_excel, [("Excel", "*.xlsx *.xls")])

    def _low_stock_report(self):
        threshold = self.config.get("low_stock_threshold", 10)
        path = os.path.join(self._export_dir(), f"inventory_{self._stamp()}.pdf")
        df, summary = generate_inventory_report(self.sys.catalog, path, "pdf", threshold)
        if df is None:
            messagebox.showinfo("Inventory", summary)
            return
        messagebox.showinfo("Report Generated",
                            f"{summary['low_stock_count']} variants at or below {threshold} units.\nSaved to {path}")

    # Inventory
    def _show_inventory(self):
        self.inventory_tv.delete(*self.inventory_tv.get_children())
        for product in self.sys.catalog.products:
            prices = [v.price for v in product.variants]
            low, high = min(prices), max(prices)
            price_range = self._money(low) if low == high else f"{self._money(low)} - {self._money(high)}"
            self.inventory_tv.insert("", tk.END, iid=product.id, values=(
                product.name, len(product.variants),
                sum(v.stock_quantity for v in product.variants), price_range
            ))

    def _selected_product(self):
        selected = self.inventory_tv.selection()
        if not selected:
            messagebox.showwarning("Warning", "Please select a product")
            return False
        for product in self.sys.catalog.products:
            if product.id == selected[0]:
                return product
        return False

    def _show_product_dialog(self, product):
        """Add a product (product=None) or edit an existing one with its variants."""
        if product is False:
            return
        dialog = tk.Toplevel(self.root)
        dialog.title("Edit Product" if product else "Add Product")
        dialog.transient(self.root)
        dialog.grab_set()

        body = NewProduct.from_product(product) if product else None
        name_var = tk.StringVar(value=body.name if body else "")
        desc_var = tk.StringVar(value=(body.description or "") if body else "")
        ttk.Label(dialog, text="Name:").grid(row=0, column=0, padx=5, pady=5, sticky=tk.E)
        ttk.Entry(dialog, textvariable=name_var, width=40).grid(row=0, column=1, columnspan=6, padx=5, pady=5, sticky=tk.W)
        ttk.Label(dialog, text="Description:").grid(row=1, column=0, padx=5, pady=5, sticky=tk.E)
        ttk.Entry(dialog, textvariable=desc_var, width=40).grid(row=1, column=1, columnspan=6, padx=5, pady=5, sticky=tk.W)

        fields = ("sku", "size", "color", "barcode", "price", "cost_price", "stock_quantity")
        variants_frame = ttk.LabelFrame(dialog, text="Variants", bootstyle="primary")
        variants_frame.grid(row=2, column=0, columnspan=7, padx=5, pady=5, sticky=tk.EW)
        for col, field in enumerate(fields):
            ttk.Label(variants_frame, text=field.replace('_', ' ').title()).grid(row=0, column=col, padx=3, pady=3)
        rows = []

        def add_row(variant=None):
            row = {"id": variant.id if variant else None}
            for col, field in enumerate(fields):
                value = getattr(variant, field) if variant else None
                var = tk.StringVar(value="" if value is None else str(value))
                ttk.Entry(variants_frame, textvariable=var, width=12).grid(row=len(rows) + 1, column=col, padx=3, pady=3)
                row[field] = var
            rows.append(row)

        for variant in (body.variants if body else [None]):
            add_row(variant)

        def save():
            variants = []
            for row in rows:
                values = {f: row[f].get().strip() or None for f in fields}
                if not any(values.values()):
                    continue
                values["id"] = row["id"]
                values["sku"] = values["sku"] or ""
                values["price"] = values["price"] or "0"
                values["cost_price"] = values["cost_price"] or "0"
                values["stock_quantity"] = values["stock_quantity"] or "0"
                variants.append(values)
            data = {"name": name_var.get().strip(), "description": desc_var.get().strip() or None, "variants": variants}
            if self.sys.save_product(data, product.id if product else None):
                dialog.destroy()
                self._refresh_catalog()

        btns = ttk.Frame(dialog)
        btns.grid(row=3, column=0, columnspan=7, pady=10, sticky=tk.E)
        ttk.Button(btns, text="Add Variant", command=add_row, bootstyle="secondary-outline").pack(side=tk.LEFT, padx=5)
        ttk.Button(btns, text="Save Product", command=save, bootstyle="success").pack(side=tk.LEFT, padx=5)

    def _show_history_dialog(self):
        product = self._selected_product()
        if not product:
            return
        result = self.sys.product_history(product.id)
        if not result:
            return

        dialog = tk.Toplevel(self.root)
        dialog.title(f"Product Audit Trail - {product.name}")
        dialog.transient(self.root)

        if not result.value:
            ttk.Label(dialog, text="No history recorded.").pack(padx=20, pady=20)
            return
        cols = ("Date", "Action", "Details", "By")
        tv = ttk.Treeview(dialog, columns=cols, show='headings', height=12)
        for c, width in zip(cols, (140, 120, 300, 120)):
            tv.column(c, width=width)
            tv.heading(c, text=c)
        for entry in result.value:
            tv.insert("", tk.END, values=(entry.created_at or "", entry.action, entry.details or "", entry.user_name))
        tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

    # Users
    def _refresh_users(self):
        if not self.sys.load_users():
            return
        self.users_tv.delete(*self.users_tv.get_children())
        for user in self.sys.users:
            self.users_tv.insert("", tk.END, iid=user.id, values=(user.name, user.email, user.role.value.title()))

    def _show_add_user(self):
        dialog = tk.Toplevel(self.root)
        dialog.title("Add New User")
        dialog.transient(self.root)
        dialog.grab_set()

        name_var, email_var, password_var = tk.StringVar(), tk.StringVar(), tk.StringVar()
        role_var = tk.StringVar(value=UserRole.CASHIER.value)
        for i, (label, var) in enumerate((("Name", name_var), ("Email", email_var), ("Password", password_var))):
            ttk.Label(dialog, text=label + ":").grid(row=i, column=0, padx=5, pady=5, sticky=tk.E)
            ttk.Entry(dialog, textvariable=var, width=30, show="*" if label == "Password" else "").grid(row=i, column=1, padx=5, pady=5)
        ttk.Label(dialog, text="Role:").grid(row=3, column=0, padx=5, pady=5, sticky=tk.E)
        ttk.Combobox(dialog, textvariable=role_var, values=[r.value for r in UserRole], state="readonly").grid(row=3, column=1, padx=5, pady=5)

        def save():
            if self.sys.add_user(name_var.get(), email_var.get(), password_var.get(), role_var.get()):
                dialog.destroy()
                self._refresh_users()

        ttk.Button(dialog, text="Create User", command=save, bootstyle="success").grid(row=4, column=1, padx=5, pady=10, sticky=tk.E)

    def _delete_user(self):
        selected = self.users_tv.selection()
        if not selected:
            messagebox.showwarning("Warning", "Please select a user")
            return
        user = next((u for u in self.sys.users if u.id == selected[0]), None)
        if user and messagebox.askyesno("Delete User", f"Delete {user.name}?"):
            if self.sys.remove_user(user):
                self._refresh_users()

    def run(self):
        self.root.mainloop()
