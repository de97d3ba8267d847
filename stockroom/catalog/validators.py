"""Validation helpers shared by the product serializer and the product importer"""
import json

from stockroom.core.exceptions import ValidationError

MANUAL_EXTENSIONS = ('pdf',)
MAX_MANUAL_SIZE = 5 * 1024 * 1024


def parse_specifications(value):
    """
    Normalise product specifications to an ordered list of {title, value} pairs.

    Accepts the list form, a plain {title: value} mapping, a JSON string of
    either, or an empty value. Raises ValidationError for anything else.
    """
    if value in (None, '', [], {}):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError('Specifications must be valid JSON.', field='specifications')

    if isinstance(value, dict):
        value = [{'title': title, 'value': spec_value} for title, spec_value in value.items()]

    if not isinstance(value, list):
        raise ValidationError('Specifications must be a list of title/value pairs.', field='specifications')

    specifications = []
    for index, item in enumerate(value, start=1):
        if not isinstance(item, dict) or 'title' not in item or 'value' not in item:
            raise ValidationError(f'Specification {index} must have a title and a value.', field='specifications')
        title = str(item['title']).strip()
        spec_value = '' if item['value'] is None else str(item['value']).strip()
        if not title:
            raise ValidationError(f'Specification {index} has an empty title.', field='specifications')
        specifications.append({'title': title, 'value': spec_value})
    return specifications


def validate_manual_file(upload):
    """Product manuals are PDF files up to 5 MB"""
    extension = upload.name.rsplit('.', 1)[-1].lower() if '.' in upload.name else ''
    if extension not in MANUAL_EXTENSIONS:
        raise ValidationError('Manual must be a PDF file.', field='manual_pdf')
    if upload.size > MAX_MANUAL_SIZE:
        raise ValidationError('Manual must be smaller than 5 MB.', field='manual_pdf')
    return upload
