# utils.py
import os
import logging
import datetime

import pandas as pd
from pydantic import ValidationError
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from api import ApiError
from catalog import CatalogSnapshot
from schemas import DecodeError, NewProduct

logger = logging.getLogger("pos_client.utils")

INVENTORY_COLUMNS = ["name", "description", "sku", "barcode", "size", "color",
                     "price", "cost_price", "stock_quantity"]

HEADER_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
]


def export_inventory_csv(catalog: CatalogSnapshot, file_path: str):
    """Dump the catalog to CSV, one row per variant."""
    df = pd.DataFrame(catalog.variant_rows())
    df.to_csv(file_path, index=False)
    return file_path


def export_inventory_excel(catalog: CatalogSnapshot, file_path: str):
    df = pd.DataFrame(catalog.variant_rows())
    df.to_excel(file_path, index=False, sheet_name='Inventory')
    return file_path


def _clean(value):
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    value = str(value).strip()
    return value or None


def products_from_frame(df: pd.DataFrame):
    """
    Group inventory rows into NewProduct bodies. Rows sharing a name
    become variants of one product. Returns (products, errors).
    """
    missing = [c for c in ("name", "sku", "price") if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns: {', '.join(missing)}")

    products, errors = [], []
    for name, group in df.groupby("name", sort=False):
        try:
            variants = []
            for _, row in group.iterrows():
                variants.append({
                    "sku": _clean(row.get("sku")) or "",
                    "barcode": _clean(row.get("barcode")),
                    "size": _clean(row.get("size")),
                    "color": _clean(row.get("color")),
                    "price": _clean(row.get("price")) or "0",
                    "cost_price": _clean(row.get("cost_price")) or "0",
                    "stock_quantity": int(float(_clean(row.get("stock_quantity")) or 0)),
                })
            products.append(NewProduct(
                name=str(name).strip(),
                description=_clean(group.iloc[0].get("description")),
                variants=variants,
            ))
        except ValidationError as e:
            errors.append(f"{name}: {e.errors()[0]['msg']}")
        except (ValueError, OverflowError) as e:
            errors.append(f"{name}: {e}")
    return products, errors


def _import_frame(api, df: pd.DataFrame):
    """Create each product through the API. Returns (created, skipped)."""
    products, errors = products_from_frame(df)
    for err in errors:
        logger.error(f"Skipping product row group {err}")
    created = 0
    skipped = len(errors)
    for product in products:
        try:
            api.create_product(product)
        except (ApiError, DecodeError) as e:
            logger.error(f"Creating product {product.name} failed: {e}")
            skipped += 1
            continue
        created += 1
    logger.info(f"Imported {created} products ({skipped} skipped)")
    return created, skipped


def import_inventory_csv(api, file_path: str):
    """
    Read CSV with columns name,sku,price[,description,barcode,size,color,
    cost_price,stock_quantity] and create the products through the API.
    """
    return _import_frame(api, pd.read_csv(file_path, dtype={"sku": str, "barcode": str}))


def import_inventory_excel(api, file_path: str):
    return _import_frame(api, pd.read_excel(file_path, dtype={"sku": str, "barcode": str}))


def receipt_file_path(receipt_dir: str, receipt: dict, ext: str):
    os.makedirs(receipt_dir, exist_ok=True)
    name = receipt.get("invoice_number") or datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in str(name))
    return os.path.join(receipt_dir, f"receipt_{safe}.{ext}")


def generate_txt_receipt(receipt: dict, file_path: str, currency="$"):
    """Write a simple text receipt."""
    with open(file_path, 'w', encoding='utf-8') as f:
        if receipt.get('invoice_number'):
            f.write(f"Invoice: {receipt['invoice_number']}\n")
        f.write(f"Date: {receipt['timestamp']}\n")
        f.write(f"Customer: {receipt.get('customer', 'Walk-in Customer')}\n")
        f.write("-" * 40 + "\n")
        f.write("Item               QTY    Price     Total\n")
        for name, qty, price, line in receipt['items']:
            f.write(f"{name[:18]:18} {qty:3}  {currency}{price:7.2f} {currency}{line:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write(f"Subtotal:     {currency}{receipt['subtotal']:10.2f}\n")
        f.write(f"Total:        {currency}{receipt['total']:10.2f}\n")
        f.write(f"Payment:      {receipt['payment_method']}\n")
        f.write("-" * 40 + "\n")
        f.write("Thank you for your purchase!\n")
    return file_path


def generate_pdf_receipt(receipt: dict, file_path: str, currency="$"):
    """Generate a PDF receipt using ReportLab."""
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        alignment=2,  # right
    ))

    title = "Receipt"
    if receipt.get('invoice_number'):
        title = f"Invoice #{receipt['invoice_number']}"
    elements.append(Paragraph(title, styles['Heading1']))

    timestamp = receipt['timestamp']
    try:
        date_str = datetime.datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except (TypeError, ValueError):
        date_str = str(timestamp)
    elements.append(Paragraph(f"Date: {date_str}", styles['Normal']))
    elements.append(Paragraph(f"Customer: {receipt.get('customer', 'Walk-in Customer')}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Quantity", "Price", "Total"]]
    for name, qty, price, line in receipt['items']:
        data.append([name, str(qty), f"{currency}{price:.2f}", f"{currency}{line:.2f}"])

    data.append(["" for _ in range(4)])
    data.append(["Subtotal:", "", "", f"{currency}{receipt['subtotal']:.2f}"])
    data.append(["Total:", "", "", f"{currency}{receipt['total']:.2f}"])
    data.append(["Payment Method:", receipt['payment_method'], "", ""])

    table = Table(data, colWidths=[2.5*inch, 1*inch, 1*inch, 1*inch])
    table.setStyle(TableStyle(HEADER_STYLE + [
        ('FONTSIZE', (0, 0), (3, 0), 12),
        ('BACKGROUND', (0, 1), (3, -1), colors.white),
        ('GRID', (0, 0), (-1, -5), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, -3), (3, -1), 'Helvetica-Bold'),
    ]))

    elements.append(table)
    elements.append(Spacer(1, 0.5 * inch))
    elements.append(Paragraph("Thank you for your purchase!", styles['RightAlign']))

    doc.build(elements)
    return file_path


def generate_orders_report(orders, file_path=None, format='csv'):
    """Sales history as a DataFrame plus summary figures; optionally written to file."""
    if not orders:
        return None, "No orders found."

    df = pd.DataFrame([{
        'invoice_number': o.invoice_number,
        'created_at': o.created_at,
        'customer': o.customer_name,
        'status': o.status,
        'items': sum(i.quantity for i in o.items),
        'total_amount': float(o.total_amount),
    } for o in orders])

    df['created_at'] = pd.to_datetime(df['created_at'], errors='coerce')
    df['date'] = df['created_at'].dt.date

    summary = {
        'total_sales': float(df['total_amount'].sum()),
        'average_sale': float(df['total_amount'].mean()),
        'num_transactions': len(df),
        'start_date': df['date'].min(),
        'end_date': df['date'].max(),
    }

    if file_path:
        if format.lower() == 'excel':
            df.to_excel(file_path, index=False, sheet_name='Orders')
        elif format.lower() == 'pdf':
            generate_pdf_report("Sales Report", df, summary, file_path)
        else:
            df.to_csv(file_path, index=False)

    return df, summary


def generate_inventory_report(catalog: CatalogSnapshot, file_path=None, format='csv', low_stock_threshold=10):
    """Catalog valuation with the low-stock variants called out."""
    rows = catalog.variant_rows()
    if not rows:
        return None, "No inventory data found."

    df = pd.DataFrame(rows)
    low_stock_items = df[df['stock_quantity'] <= low_stock_threshold]

    summary = {
        'total_items': len(df),
        'total_value': float((df['cost_price'] * df['stock_quantity']).sum()),
        'retail_value': float((df['price'] * df['stock_quantity']).sum()),
        'low_stock_count': len(low_stock_items),
        'low_stock_items': low_stock_items.to_dict('records') if not low_stock_items.empty else []
    }

    if file_path:
        if format.lower() == 'excel':
            df.to_excel(file_path, index=False, sheet_name='Inventory')
        elif format.lower() == 'pdf':
            generate_pdf_report("Inventory Report", df, summary, file_path)
        else:
            df.to_csv(file_path, index=False)

    return df, summary


def generate_financial_report(profit_loss, balance_sheet, file_path=None, format='csv'):
    """Profit & loss breakdown plus balance sheet figures."""
    df = pd.DataFrame([{
        'date': row.date,
        'revenue': float(row.revenue),
        'expense': float(row.expense),
        'net': float(row.revenue - row.expense),
    } for row in profit_loss.breakdown], columns=['date', 'revenue', 'expense', 'net'])

    summary = {
        'revenue': float(profit_loss.revenue),
        'expenses': float(profit_loss.expenses),
        'net_profit': float(profit_loss.net_profit),
        'assets': float(balance_sheet.assets),
        'liabilities': float(balance_sheet.liabilities),
        'equity': float(balance_sheet.equity),
    }

    if file_path:
        if format.lower() == 'pdf':
            generate_pdf_report("Financial Report", df, summary, file_path)
        elif format.lower() == 'excel':
            with pd.ExcelWriter(file_path) as writer:
                pd.DataFrame([summary]).to_excel(writer, index=False, sheet_name='Summary')
                df.to_excel(writer, index=False, sheet_name='Breakdown')
        else:
            pd.concat([
                pd.DataFrame([{'date': 'TOTAL', 'revenue': summary['revenue'],
                               'expense': summary['expenses'], 'net': summary['net_profit']}]),
                df,
            ], ignore_index=True).to_csv(file_path, index=False)

    return df, summary


def generate_pdf_report(title, data, summary, file_path, currency="$"):
    """Generate a PDF report with data and summary statistics."""
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()

    elements.append(Paragraph(title, styles['Heading1']))
    elements.append(Spacer(1, 0.2 * inch))

    current_date = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    elements.append(Paragraph(f"Generated: {current_date}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    elements.append(Paragraph("Summary", styles['Heading2']))

    summary_data = [["Metric", "Value"]]
    for key, value in summary.items():
        if key == 'low_stock_items':
            continue
        if isinstance(value, float):
            formatted_value = f"{currency}{value:,.2f}"
        elif isinstance(value, int):
            formatted_value = f"{value:,}"
        else:
            formatted_value = str(value)
        summary_data.append([key.replace('_', ' ').title(), formatted_value])

    summary_table = Table(summary_data, colWidths=[2.5*inch, 3*inch])
    summary_table.setStyle(TableStyle(HEADER_STYLE + [
        ('FONTSIZE', (0, 0), (1, 0), 12),
        ('BACKGROUND', (0, 1), (1, -1), colors.white),
        ('GRID', (0, 0), (1, -1), 1, colors.black),
    ]))

    elements.append(summary_table)
    elements.append(Spacer(1, 0.3 * inch))

    if isinstance(data, pd.DataFrame) and not data.empty:
        elements.append(Paragraph("Detailed Data", styles['Heading2']))

        table_data = [data.columns.tolist()]
        for _, row in data.iterrows():
            table_data.append([str(x) for x in row.tolist()])

        # limit to first 50 rows to avoid huge PDFs
        max_rows = min(51, len(table_data))
        data_table = Table(table_data[:max_rows], colWidths=None)
        data_table.setStyle(TableStyle(HEADER_STYLE + [
            ('FONTSIZE', (0, 0), (-1, 0), 10),
            ('BACKGROUND', (0, 1), (-1, -1), colors.white),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('FONTSIZE', (0, 1), (-1, -1), 8),
        ]))
        elements.append(data_table)

        if len(table_data) > max_rows:
            elements.append(Spacer(1, 0.2 * inch))
            elements.append(Paragraph(f"Note: Showing {max_rows - 1} of {len(table_data)-1} rows",
                                      styles['Italic']))

    doc.build(elements)
    return file_path
