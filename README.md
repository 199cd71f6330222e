# nodefeatures

`nodefeatures` inspects a Linux machine and reports what it can do: CPU
feature flags, power-management settings, kernel version and configuration,
SELinux state, NUMA and NVDIMM memory, SR-IOV capable network interfaces, PCI
and USB devices, IOMMU support, solid-state storage and the operating-system
release. Every finding is a named feature with a value, suitable for use as a
label on a cluster node.

## Feature sources

Each area of the system is covered by a feature source, a subclass of
`nodefeatures.base.FeatureSource`. A source has a `discover()` method that
returns a dictionary of feature names to values, and a `new_config()` method
that returns its default configuration (or `None` for sources that take
none). Configurable sources keep their configuration in the `config`
attribute and raise `TypeError` when given a configuration of the wrong type.

| Source            | Module                    | What it reports                                        |
|-------------------|---------------------------|--------------------------------------------------------|
| `CpuSource`       | `nodefeatures.cpu`        | CPU flags, hyper-threading, SST-BF, p-state, c-state, RDT |
| `KernelSource`    | `nodefeatures.kernel`     | kernel version parts, selected kconfig options, SELinux |
| `MemorySource`    | `nodefeatures.memory`     | NUMA topology, NVDIMM presence and DAX regions          |
| `NetworkSource`   | `nodefeatures.network`    | SR-IOV capable and configured interfaces               |
| `PciSource`       | `nodefeatures.pci`        | present PCI devices of whitelisted classes             |
| `UsbSource`       | `nodefeatures.usb`        | present USB devices of whitelisted classes             |
| `IommuSource`     | `nodefeatures.iommu`      | whether an IOMMU is enabled                            |
| `StorageSource`   | `nodefeatures.storage`    | non-rotational disks                                   |
| `SystemSource`    | `nodefeatures.system`     | os-release `ID` and `VERSION_ID`, split into major/minor |
| `LocalSource`     | `nodefeatures.local`      | features from hook programs and feature files          |
| `CustomSource`    | `nodefeatures.custom`     | features defined by match rules                        |
| `FakeSource`      | `nodefeatures.fake`       | fixed features from its configuration                  |

```python
from nodefeatures.memory import MemorySource
from nodefeatures.pci import PciSource

print(MemorySource().discover())
print(PciSource().discover())
```

## Inspecting another root

Lookups under `/sys`, `/etc`, `/usr` and `/boot` go through `HostPaths`,
built with `host_paths(prefix)` from `nodefeatures.base`. Inside a container
that mounts the host's directories as `/host-sys`, `/host-etc` and so on,
build the paths with the prefix `/host-` and pass them as the `host` field of
`CpuSource`, `KernelSource`, `MemorySource`, `NetworkSource`, `PciSource`,
`IommuSource`, `StorageSource` and `SystemSource`.

A few locations are set separately: `UsbSource` and `UsbIdRule` take a
`sysfs_root` (default `/sys`), `LocalSource` takes `hook_dir` and
`features_dir`, `CustomSource` takes `directory`, and `KernelSource` takes
`kernel_version_path`. `/proc/config.gz` and `/proc/modules` are read from the
running system.

## Helpers

The parsing helpers can be used on their own:

```python
from nodefeatures.system import split_version
from nodefeatures.local import parse_features

split_version("20.04")
# {'major': '20', 'minor': '04'}

parse_features(["hello=world", "flag"], "myhook")
# {'myhook-hello': 'world', 'myhook-flag': 'true'}
```

- `nodefeatures.kernelutils.parse_kconfig` turns kernel configuration text
  into a dictionary where built-in and module options (`=y`, `=m`) become
  `"true"`; `read_kconfig` finds and reads the configuration file.
- `nodefeatures.kernel.parse_version` splits a kernel release into `full`,
  `major`, `minor` and `revision`.
- `nodefeatures.system.parse_os_release` reads the key/value pairs of an
  os-release file.
- `nodefeatures.busutils.detect_pci` and `detect_usb` list devices grouped
  by class.
- `nodefeatures.cpuidflags.hwcap_flags` names the bits of the kernel's
  hardware capability words for `arm`, `arm64`, `ppc64le` and `s390x`.

## Custom features

`CustomSource` combines three sets of feature specifications: built-in ones
(`rdma.capable` for PCI devices of vendor `15b3`, `rdma.available` when the
`ib_uverbs` and `rdma_ucm` modules are loaded), the ones in its
configuration, and YAML files found in its directory and that directory's
first-level subdirectories (hidden files are skipped). A file looks like this:

```yaml
- name: my.feature
  value: custom
  matchOn:
    - pciId:
        vendor: ["8086"]
        class: ["0200"]
    - loadedKMod: ["vfio_pci"]
- name: on.this.node
  matchOn:
    - nodename: ["worker-.*"]
```

A feature is present when every rule inside one `matchOn` entry matches; the
entries themselves are alternatives. Without a `value`, a present feature is
`True`. The available rules are `pciId`, `usbId`, `loadedKMod`, `cpuId`,
`kConfig` and `nodename`, implemented in `nodefeatures.rules`. The
`nodename` rule searches its patterns in the `NODE_NAME` environment
variable. Such files can be parsed directly with
`nodefeatures.custom.parse_feature_specs`, which rejects unknown fields.

## Local hooks and feature files

`LocalSource` runs every regular file in its hook directory as a program and
reads every regular file in its features directory. Each output line is
`name=value` or just `name` (meaning `"true"`). Names without a `/` are
prefixed with the hook or file name and a dash; a leading `/` is dropped.
Hook output overrides file content for the same name.

## What this package does not do

- It has no command-line program and does not label nodes or talk to a
  cluster; it only returns features as dictionaries.
- It does not execute the x86 CPUID instruction. On x86-64, `CpuSource`
  reports CPU flags only when given a `cpuid_flags` callable, and RDT and
  SST-BF features only when given a `cpuid(leaf, subleaf)` callable returning
  `CpuidRegisters`. On `arm`, `arm64`, `ppc64le` and `s390x` the flags are
  read from `/proc/self/auxv`.