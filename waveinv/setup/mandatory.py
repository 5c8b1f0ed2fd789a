# -*- coding: utf8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Mandatory config parameters for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""

# Parameters which cannot be None, for each program
_assembly_params = [
    'basic_id_file',
    'basic_data_file',
    'partial_id_file',
    'partial_data_file',
    'unknown_parameter_file',
]
_solver_params = [
    'inverse_methods',
    'alpha',
    'evaluate_num',
]
mandatory_config_params = {
    'wave_inversion': _assembly_params + _solver_params,
    'assemble_matrices': _assembly_params,
    'solve_inversion': _solver_params,
}
