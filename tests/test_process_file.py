import datetime
import os
import re
import shutil
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from lxml import etree

from crm_xml_processor import CrmXmlProcessor, rules
from crm_xml_processor.backup import backup_timestamp, create_backup
from crm_xml_processor.exceptions import ProcessingIoError, XmlParseError
from crm_xml_processor.rules import AttributeRule, TransformConfig
from crm_xml_processor.type_codes import TypeCodeTable

SAMPLE_DIR = os.path.join(os.path.dirname(__file__), '..', 'sample_data')
SAMPLE_XML = os.path.join(SAMPLE_DIR, 'customizations.xml')
SAMPLE_CONFIG = os.path.join(SAMPLE_DIR, 'config.json')


def copy_sample(tmp_path):
    target = tmp_path / 'customizations.xml'
    shutil.copyfile(SAMPLE_XML, target)
    return str(target)


def backups_of(path):
    folder, name = os.path.split(path)
    return [f for f in os.listdir(folder) if f.startswith(name + '.backup.')]


def canonical(path_or_bytes):
    parser = etree.XMLParser(remove_blank_text=True)
    if isinstance(path_or_bytes, bytes):
        root = etree.fromstring(path_or_bytes, parser)
    else:
        root = etree.parse(path_or_bytes, parser).getroot()
    return etree.tostring(root, method='c14n')


def test_process_sample_file(tmp_path):
    xml_path = copy_sample(tmp_path)
    processor = CrmXmlProcessor(rules.load(SAMPLE_CONFIG), log_dir='')
    report = processor.process_file(xml_path)

    assert report.removed_elements == {'IsQuickCreateEnabled': 2, 'RibbonDiffXml': 1}
    assert report.removed_attributes == {'option': 2}
    assert report.added_type_codes == 2
    assert report.placeholder_type_codes == 1

    tree = etree.parse(xml_path)
    assert not tree.xpath('//IsQuickCreateEnabled | //RibbonDiffXml')
    assert not tree.xpath('//option[@Color]')
    assert tree.xpath('//option[@ExternalValue="ACC"]')
    entities = tree.xpath('//Entities/Entity')
    assert [e[0].tag for e in entities] == ['ObjectTypeCode'] * 3
    assert [e[0].text for e in entities] == ['1', '##', '2']
    assert len(tree.xpath('//ObjectTypeCode')) == 3


def test_backup_is_identical_copy(tmp_path):
    xml_path = copy_sample(tmp_path)
    with open(xml_path, 'rb') as f:
        original = f.read()
    processor = CrmXmlProcessor(rules.load(SAMPLE_CONFIG), log_dir='')
    report = processor.process_file(xml_path)
    assert os.path.basename(report.backup_path) in backups_of(xml_path)
    with open(report.backup_path, 'rb') as f:
        assert f.read() == original


def test_empty_rules_leave_document_unchanged(tmp_path):
    xml_path = copy_sample(tmp_path)
    processor = CrmXmlProcessor(TransformConfig(), TypeCodeTable(), log_dir='')
    report = processor.process_file(xml_path)
    assert report.removed_elements == {}
    assert report.removed_attributes == {}
    assert report.added_type_codes == 0
    assert canonical(xml_path) == canonical(SAMPLE_XML)


def test_declaration_and_encoding_preserved(tmp_path):
    path = tmp_path / 'latin.xml'
    path.write_bytes('<?xml version="1.0" encoding="ISO-8859-1"?><r><Foo/>ä</r>'.encode('iso-8859-1'))
    processor = CrmXmlProcessor(TransformConfig(remove_elements=('Foo',)), TypeCodeTable(), log_dir='')
    processor.process_file(str(path))
    data = path.read_bytes()
    assert data.startswith(b"<?xml version='1.0' encoding='ISO-8859-1'?>")
    assert etree.fromstring(data).text == 'ä'


def test_no_declaration_when_source_had_none(tmp_path):
    path = tmp_path / 'plain.xml'
    path.write_text('<r><option Color="x" ExternalValue="y"/></r>', encoding='utf-8')
    cfg = TransformConfig(remove_attributes=(AttributeRule('option', ('Color',)),))
    CrmXmlProcessor(cfg, TypeCodeTable(), log_dir='').process_file(str(path))
    assert path.read_text(encoding='utf-8') == '<r><option ExternalValue="y"/></r>'


def test_malformed_xml_aborts_and_keeps_backup(tmp_path):
    path = tmp_path / 'broken.xml'
    path.write_text('<ImportExportXml><Entities>', encoding='utf-8')
    processor = CrmXmlProcessor(TransformConfig(remove_elements=('Entities',)), TypeCodeTable(), log_dir='')
    with pytest.raises(XmlParseError):
        processor.process_file(str(path))
    assert path.read_text(encoding='utf-8') == '<ImportExportXml><Entities>'
    backups = backups_of(str(path))
    assert len(backups) == 1
    assert (tmp_path / backups[0]).read_text(encoding='utf-8') == '<ImportExportXml><Entities>'


def test_parser_error_marker_is_rejected(tmp_path):
    path = tmp_path / 'marker.xml'
    path.write_text('<r><parsererror>bad</parsererror></r>', encoding='utf-8')
    processor = CrmXmlProcessor(TransformConfig(), TypeCodeTable(), log_dir='')
    with pytest.raises(XmlParseError):
        processor.process_file(str(path))
    assert path.read_text(encoding='utf-8') == '<r><parsererror>bad</parsererror></r>'


def test_missing_type_code_file_falls_back_to_placeholder(tmp_path):
    xml_path = copy_sample(tmp_path)
    cfg = TransformConfig(add_object_type_code=True, entity_type_codes_file=str(tmp_path / 'none.csv'))
    report = CrmXmlProcessor(cfg, log_dir='').process_file(xml_path)
    assert report.added_type_codes == 2
    assert report.placeholder_type_codes == 2
    tree = etree.parse(xml_path)
    assert [e.text for e in tree.xpath('//Entity/ObjectTypeCode')] == ['##', '##', '2']


def test_missing_input_raises_io_error(tmp_path):
    processor = CrmXmlProcessor(TransformConfig(), TypeCodeTable(), log_dir='')
    with pytest.raises(ProcessingIoError):
        processor.process_file(str(tmp_path / 'absent.xml'))


def test_per_file_log_written(tmp_path):
    xml_path = copy_sample(tmp_path)
    log_dir = tmp_path / 'logs'
    processor = CrmXmlProcessor(rules.load(SAMPLE_CONFIG), log_dir=str(log_dir))
    report = processor.process_file(xml_path)
    assert report.log_path is not None
    assert os.path.dirname(report.log_path) == str(log_dir)
    with open(report.log_path, 'r', encoding='utf-8') as f:
        content = f.read()
    assert 'Removed 2 <IsQuickCreateEnabled> elements' in content
    assert 'Successfully processed' in content
    assert not processor.logger.handlers


def test_backup_name_is_sortable_and_safe(tmp_path):
    when = datetime.datetime(2026, 10, 19, 8, 15, 30, 123456, tzinfo=datetime.timezone.utc)
    assert backup_timestamp(when) == '2026-10-19T08-15-30-123Z'
    path = tmp_path / 'c.xml'
    path.write_bytes(b'<r/>')
    backup_path = create_backup(str(path), when)
    assert backup_path == str(path) + '.backup.2026-10-19T08-15-30-123Z'
    assert re.search(r'[:]', os.path.basename(backup_path)) is None
