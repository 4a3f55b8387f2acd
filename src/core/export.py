"""CSV export utilities."""
import csv

from django.http import HttpResponse


def _cell(item, field):
    if callable(field):
        value = field(item)
    elif isinstance(item, dict):
        value = item.get(field, "")
    else:
        value = getattr(item, field, "")
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return str(value)


def rows_to_csv_response(rows, columns, filename):
    """Convert model instances or dict rows to a CSV HttpResponse.

    Args:
        rows: a QuerySet, or any iterable of objects or dicts
        columns: list of (field_name_or_callable, header_label) tuples.
            Strings are looked up as dict keys or attributes; callables
            are called with the row. List values are joined with "; ".
        filename: download filename (without extension)
    """
    response = HttpResponse(content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{filename}.csv"'
    # UTF-8 BOM for Excel compatibility
    response.write("\ufeff")

    writer = csv.writer(response)
    writer.writerow([col[1] for col in columns])

    iterator = rows.iterator() if hasattr(rows, "iterator") else rows
    for item in iterator:
        writer.writerow([_cell(item, field) for field, _ in columns])

    return response
