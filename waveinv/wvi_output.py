# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Diagnostic output files for wave_inversion.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import shutil
import logging
from datetime import datetime
from tzlocal import get_localzone
from obspy.geodetics import gps2dist_azimuth, locations2degrees
from .setup import config
from .wvi_unknowns import write_unknown_parameters
from . import __version__
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])
# reduce logging level for tzlocal
logging.getLogger('tzlocal').setLevel(logging.WARNING)

UNKNOWNS_FILE = 'unknowns.lst'
RUN_INFO_FILE = 'run_info.txt'


def write_each_variance(dvector, outdir):
    """Write the normalized variance of each timewindow."""
    filename = os.path.join(outdir, 'eachVariance.txt')
    variances = dvector.window_variances()
    with open(filename, 'w', encoding='utf-8') as fp:
        for _id, var in zip(dvector.obs_ids, variances):
            obs = _id.observer
            fp.write(
                f'{obs.station} {obs.network} {obs.latitude} '
                f'{obs.longitude} {_id.event} {_id.component} '
                f'{_id.start_time} {var}\n')


def write_event_variance(dvector, outdir):
    """Write the normalized variance of each event."""
    filename = os.path.join(outdir, 'eventVariance.txt')
    with open(filename, 'w', encoding='utf-8') as fp:
        for event in sorted(dvector.event_variance, key=str):
            var = dvector.event_variance[event]
            fp.write(
                f'{event.event_id} {event.latitude} {event.longitude} '
                f'{event.depth} {var}\n')


def write_station_variance(dvector, outdir):
    """Write the normalized variance of each station."""
    filename = os.path.join(outdir, 'stationVariance.txt')
    with open(filename, 'w', encoding='utf-8') as fp:
        for obs in sorted(dvector.station_variance, key=str):
            var = dvector.station_variance[obs]
            fp.write(
                f'{obs.station} {obs.network} {obs.latitude} '
                f'{obs.longitude} {var}\n')


def write_distribution(dvector, outdir):
    """
    Write event/station geometry for each timewindow.

    Each line is:
    ``station network stationLat stationLon eventID eventLat eventLon
    distance(deg) azimuth(deg)``.
    """
    filename = os.path.join(outdir, 'distribution.txt')
    with open(filename, 'w', encoding='utf-8') as fp:
        for _id in dvector.obs_ids:
            obs, ev = _id.observer, _id.event
            distance = locations2degrees(
                ev.latitude, ev.longitude, obs.latitude, obs.longitude)
            _, azimuth, _ = gps2dist_azimuth(
                ev.latitude, ev.longitude, obs.latitude, obs.longitude)
            fp.write(
                f'{obs.station} {obs.network} {obs.latitude} '
                f'{obs.longitude} {ev.event_id} {ev.latitude} '
                f'{ev.longitude} {distance:.3f} {azimuth:.3f}\n')


def write_order(dvector, outdir):
    """Write the order of the timewindows in the data vector."""
    filename = os.path.join(outdir, 'order.txt')
    with open(filename, 'w', encoding='utf-8') as fp:
        fp.write(
            '# index station network eventID component startTime npts '
            'startPoint\n')
        for n, _id in enumerate(dvector.obs_ids):
            obs = _id.observer
            fp.write(
                f'{n} {obs.station} {obs.network} {_id.event} '
                f'{_id.component} {_id.start_time} {_id.npts} '
                f'{dvector.start_points[n]}\n')


def write_weighting(dvector, outdir):
    """Write the weight of each timewindow."""
    filename = os.path.join(outdir, 'weighting.txt')
    with open(filename, 'w', encoding='utf-8') as fp:
        fp.write(f'# weighting type: {dvector.weighting}\n')
        for _id, weight in zip(dvector.obs_ids, dvector.weights):
            fp.write(f'{_id} {weight}\n')


def write_dvector_diagnostics(dvector, outdir):
    """
    Write all the data vector diagnostic files.

    :param dvector: Data vector
    :type dvector: :class:`~waveinv.wvi_dvector.Dvector`
    :param outdir: Output directory
    :type outdir: str
    """
    os.makedirs(outdir, exist_ok=True)
    write_each_variance(dvector, outdir)
    write_event_variance(dvector, outdir)
    write_station_variance(dvector, outdir)
    write_distribution(dvector, outdir)
    write_order(dvector, outdir)
    write_weighting(dvector, outdir)
    logger.info(f'Data vector diagnostics written to {outdir}')


def write_unknowns(unknowns, outdir):
    """Write the unknown parameters, in the order of the columns of A."""
    write_unknown_parameters(unknowns, os.path.join(outdir, UNKNOWNS_FILE))


def write_run_info(outdir):
    """Write WaveInv version and completion time."""
    config.end_of_run = datetime.now()
    tz = get_localzone()
    config.end_of_run_tz = tz.tzname(config.end_of_run)
    filename = os.path.join(outdir, RUN_INFO_FILE)
    with open(filename, 'w', encoding='utf-8') as fp:
        fp.write(f'WaveInv version: {__version__}\n')
        fp.write(f'Program: {config.progname}\n')
        fp.write(
            f'Run completed: {config.end_of_run} {config.end_of_run_tz}\n')


def _make_symlinks(outdir):
    """Make symlinks to input files into output directory."""
    # Windows does not support symlinks
    if os.name == 'nt':
        return
    out_data_dir = os.path.join(outdir, 'input_files')
    rel_path = os.path.relpath(config.workdir, out_data_dir)
    filelist = [
        config.basic_id_file, config.basic_data_file,
        config.partial_id_file, config.partial_data_file,
        config.unknown_parameter_file, config.external_weight_file
    ]
    filelist += config.weight_table_files or []
    filelist = [
        filename for filename in filelist
        if filename is not None and os.path.exists(filename)]
    if not filelist:
        return
    os.makedirs(out_data_dir, exist_ok=True)
    for filename in filelist:
        basename = os.path.basename(filename)
        linkname = os.path.join(out_data_dir, basename)
        if os.path.isfile(linkname) or os.path.islink(linkname):
            os.remove(linkname)
        elif os.path.isdir(linkname):
            shutil.rmtree(linkname, ignore_errors=True)
        filename = os.path.join(rel_path, filename)
        os.symlink(filename, linkname)


def write_output(outdir, dvector=None, unknowns=None):
    """
    Write diagnostics, unknowns and run information to outdir.

    :param outdir: Output directory
    :type outdir: str
    :param dvector: Data vector (if None, no data vector diagnostics)
    :type dvector: :class:`~waveinv.wvi_dvector.Dvector`
    :param unknowns: Unknown parameters (if None, not written)
    :type unknowns: list of :class:`~waveinv.wvi_unknowns.UnknownParameter`
    """
    os.makedirs(outdir, exist_ok=True)
    if dvector is not None:
        write_dvector_diagnostics(dvector, outdir)
        _make_symlinks(outdir)
    if unknowns is not None:
        write_unknowns(unknowns, outdir)
    write_run_info(outdir)
