# gpufeatures

`gpufeatures` computes the node labels that describe the GPUs on a
Kubernetes node, and builds the container allocation responses a GPU
device plugin hands back to the kubelet.

It has no dependencies outside the standard library. All hardware facts
come from objects you pass in, so the logic can be driven by real device
queries or by simple in-memory stand-ins.

## Modules

- `gpufeatures.labels` – `Labels` is a `dict` of label keys to string
  values that is itself a labeler (`labels()` returns itself).
  `merge(*labelers)` returns a `MergedLabeler` whose labels are the union
  of its members', later ones overriding earlier ones; `EmptyLabeler`
  yields nothing. `Labels.write_to(output)` writes one `key=value` line per
  label and returns the number of characters written;
  `Labels.update_file(path)` writes them to `path` through
  `write_file_atomically` (a temporary file in a `gfd-tmp` directory next
  to the target, then a rename and `chmod`), or to stdout when `path` is
  empty. `Config` and `ReplicatedResource` hold the settings used
  throughout: MIG strategy, machine type file, timestamp switch,
  time-slicing resources, GDS/MOFED switches, device ID and device list
  strategies, driver root and CDI annotation prefix.
- `gpufeatures.resource_labeler` – `ResourceLabeler` builds
  `<resource-name>.<suffix>` labels. `new_gpu_resource_labeler`,
  `new_gpu_resource_labeler_without_sharing` and `new_mig_resource_labeler`
  produce the `product`, `count`, `replicas`, `memory`, architecture and
  MIG attribute labels. A resource shared by time-slicing gets a
  `-SHARED` product suffix unless it is renamed; without a config,
  `replicas` is `0`. `get_arch_family(8, 0)` returns `"ampere"`.
- `gpufeatures.mig_strategy` – `MigStrategy` (`none`, `single`, `mixed`)
  and `new_resource_labeler(manager, config)`, which labels full GPUs and
  adds the labels of the configured strategy, including the
  `MIG-INVALID` labels when a node does not fit the `single` strategy.
- `gpufeatures.mig` – `DeviceInfo` groups a manager's devices by MIG mode;
  `parse_mig_minors_line` and `get_mig_capability_device_paths` read the
  MIG minors file into a mapping of capability path to
  `/dev/nvidia-caps/nvidia-cap<N>` device node (an empty mapping if the
  file does not exist; unparsable lines are logged and skipped).
- `gpufeatures.nvml_labeler` – `new_nvml_labeler`, `new_version_labeler`,
  `new_mig_capability_labeler`, and `new_labelers(manager, vgpu, config)`
  to combine them with the vGPU labeler.
- `gpufeatures.node_labelers` – `new_machine_type_labeler`,
  `get_machine_type`, `mig_strategy_labeler`, `new_timestamp_labeler` and
  `VGPULabeler`.
- `gpufeatures.allocation` – `DevicePlugin` builds
  `ContainerAllocateResponse` objects: environment variables, volume
  mounts (`Mount`), device specs (`DeviceSpec`) and CDI annotations
  (`update_cdi_annotations`), according to the configured
  `DeviceListStrategy` values. `PluginOptions` states the advertised
  options.
- `gpufeatures.platform` – `resolve_mode(has_nvml, is_tegra,
  fail_on_init_error)` picks a `Mode`; `NullManager` offers no plugins.
- `gpufeatures.cuda_result` – `Result` and `DeviceAttribute` codes,
  `result_name`, `check` (raising `CudaError`) and `c_string`.
- `gpufeatures.version` – `get_version_parts` and `get_version_string`.
- `gpufeatures.kube` – `node_name()` (from `NODE_NAME`) and
  `get_kubernetes_namespace()` (service-account file, then
  `KUBERNETES_NAMESPACE`).

## The objects you supply

A device manager has `init()`, `shutdown()`, `get_devices()`,
`get_driver_version()` (a string such as `"535.104.05"`) and
`get_cuda_driver_version()` (a `(major, minor)` pair). Its devices have
`get_name()`, `get_total_memory_mb()`, `get_cuda_compute_capability()`,
`is_mig_enabled()`, `is_mig_capable()` and `get_mig_devices()`; MIG
devices also have `get_device_handle_from_mig_device_handle()` and
`get_attributes()`. `DevicePlugin` takes a resource manager with
`devices()`, `get_preferred_allocation(...)` and `get_device_paths(ids)`,
and a CDI handler with `qualified_name(kind, id)`.

## Example

```python
import io

from gpufeatures.labels import Labels, merge

base = Labels({"nvidia.com/gpu.count": "1"})
override = Labels({"nvidia.com/gpu.count": "2", "nvidia.com/mig.capable": "false"})

combined = merge(base, override).labels()
assert combined["nvidia.com/gpu.count"] == "2"

buffer = io.StringIO()
combined.write_to(buffer)
print(buffer.getvalue())
```

## Errors

`LabelingError` when labels cannot be produced or written,
`AllocationError` for allocation and CDI annotation failures,
`PlatformError` when platform detection fails and failing was requested,
and `CudaError` from `check`.

## What it does not do

- It does not query GPUs itself: there are no driver or management
  library bindings, only the interfaces described above.
- It runs no server: there is no gRPC service, no kubelet registration,
  no device health checking and no listing or watching of devices.
- It does not write labels to the Kubernetes API; labels go to a file or
  stdout.
- It has no command-line program.