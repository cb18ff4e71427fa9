import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeInspector
from isoprep.editions import (ExplicitIndex, FirstAvailable, ImageDescriptor, PreferredEdition, WimlibInspector,
                              enumerate_images, format_catalog, parse_catalog, select_image)
from isoprep.errors import IndexNotFound, InspectionFailed, NoImagesFound

CATALOG = '''<WIM>
  <TOTALBYTES>4930528301</TOTALBYTES>
  <IMAGE INDEX="1">
    <NAME>Windows 11 Home</NAME>
    <DESCRIPTION>Windows 11 Home</DESCRIPTION>
    <WINDOWS><EDITIONID>Core</EDITIONID></WINDOWS>
  </IMAGE>
  <IMAGE INDEX="6">
    <NAME>Windows 11 Pro</NAME>
    <DESCRIPTION>Windows 11 Pro edition</DESCRIPTION>
    <FLAGS>Professional</FLAGS>
    <WINDOWS><EDITIONID>Professional</EDITIONID></WINDOWS>
  </IMAGE>
</WIM>'''


class TestSelect:
	def test_preferred_edition(self, descriptors):
		assert select_image(descriptors, PreferredEdition(edition='Professional')).index == 2

	def test_preferred_edition_missing_falls_back(self, descriptors, capsys):
		assert select_image(descriptors, PreferredEdition(edition='Ultimate')).index == 1
		err = capsys.readouterr().err
		assert 'Ultimate' in err
		assert 'Core, Professional, Education' in err

	def test_preferred_edition_is_case_sensitive(self, descriptors):
		assert select_image(descriptors, PreferredEdition(edition='professional')).index == 1

	def test_explicit_index(self, descriptors):
		assert select_image(descriptors, ExplicitIndex(index=3)).index == 3

	def test_explicit_index_missing(self, descriptors):
		with pytest.raises(IndexNotFound) as excinfo:
			select_image(descriptors, ExplicitIndex(index=99))
		assert excinfo.value.available == [1, 2, 3]
		assert '1, 2, 3' in str(excinfo.value)

	def test_first_available(self, descriptors):
		assert select_image(descriptors, FirstAvailable()).index == 1

	def test_non_contiguous_indices(self):
		images = [ImageDescriptor(index=4, name='A'), ImageDescriptor(index=9, name='B')]
		assert select_image(images, FirstAvailable()).index == 4
		assert select_image(images, ExplicitIndex(index=9)).name == 'B'

	def test_deterministic(self, descriptors):
		policy = PreferredEdition(edition='Education')
		assert select_image(descriptors, policy) == select_image(list(descriptors), policy)

	def test_empty(self):
		with pytest.raises(NoImagesFound):
			select_image([], FirstAvailable())


class TestEnumerate:
	def test_returns_inspector_order(self, descriptors, tmp_path):
		inspector = FakeInspector(descriptors)
		assert enumerate_images(tmp_path / 'install.wim', inspector) == descriptors
		assert inspector.calls == [tmp_path / 'install.wim']

	def test_empty_catalog(self, tmp_path):
		with pytest.raises(NoImagesFound):
			enumerate_images(tmp_path / 'install.wim', FakeInspector([]))


class TestCatalog:
	def test_parse_utf16(self):
		images = parse_catalog(b'\xff\xfe' + CATALOG.encode('utf-16-le'))
		assert [(i.index, i.name, i.edition_id) for i in images] == [
		    (1, 'Windows 11 Home', 'Core'),
		    (6, 'Windows 11 Pro', 'Professional'),
		]
		assert images[1].description == 'Windows 11 Pro edition'

	def test_parse_with_declaration(self):
		images = parse_catalog('<?xml version="1.0" encoding="UTF-16"?>\n' + CATALOG)
		assert len(images) == 2

	def test_parse_garbage(self):
		with pytest.raises(InspectionFailed):
			parse_catalog(b'not xml at all')

	def test_bad_index(self):
		with pytest.raises(InspectionFailed, match='invalid index'):
			parse_catalog('<WIM><IMAGE INDEX="x"><NAME>A</NAME></IMAGE></WIM>')

	def test_format(self, descriptors):
		text = format_catalog(descriptors)
		assert '[2] Windows 11 Pro (Professional)' in text
		assert text.count('\n') == 2


class TestWimlibInspector:
	def test_list_images(self, tmp_path):
		proc = MagicMock(stdout=CATALOG.encode('utf8'))
		with patch('isoprep.editions.shutil.which', return_value='/usr/bin/wimlib-imagex'), \
		     patch('isoprep.editions.subprocess.run', return_value=proc) as run:
			images = WimlibInspector().list_images(tmp_path / 'install.wim')
		assert run.call_args[0][0] == ['wimlib-imagex', 'info', str(tmp_path / 'install.wim'), '--xml']
		assert [i.index for i in images] == [1, 6]

	def test_tool_missing(self, tmp_path):
		with patch('isoprep.editions.shutil.which', return_value=None):
			with pytest.raises(InspectionFailed, match='wimlib-imagex was not found'):
				WimlibInspector().list_images(tmp_path / 'install.wim')

	def test_tool_fails(self, tmp_path):
		error = subprocess.CalledProcessError(1, ['wimlib-imagex'], stderr=b'not a WIM file')
		with patch('isoprep.editions.shutil.which', return_value='/usr/bin/wimlib-imagex'), \
		     patch('isoprep.editions.subprocess.run', side_effect=error):
			with pytest.raises(InspectionFailed, match='not a WIM file'):
				WimlibInspector().list_images(Path('install.wim'))
